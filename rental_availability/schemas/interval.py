"""Half-open stay intervals."""

from datetime import date

from pydantic import BaseModel, ConfigDict


class DateInterval(BaseModel):
    """The nights of a stay: ``check_in`` is included, ``check_out`` is not.

    Construction does not enforce ordering so that callers can hand a
    malformed range to the engine and get an ``InvalidIntervalError`` back.
    """

    model_config = ConfigDict(frozen=True)

    check_in: date
    check_out: date

    @property
    def is_valid(self) -> bool:
        return self.check_in < self.check_out

    @property
    def nights(self) -> int:
        return max((self.check_out - self.check_in).days, 0)

    def overlaps(self, other: "DateInterval") -> bool:
        """Adjacent stays (one's check_out is the other's check_in) do not overlap."""
        return self.check_in < other.check_out and other.check_in < self.check_out

    def __str__(self) -> str:
        return f"[{self.check_in.isoformat()}, {self.check_out.isoformat()})"
