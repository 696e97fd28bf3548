"""Typed errors raised by the availability engine."""

import uuid
from collections.abc import Iterable
from datetime import date


class BookingError(Exception):
    """Base class for every error the engine raises."""


class InvalidIntervalError(BookingError):
    """Malformed or backdated stay dates. Caller error, not retried."""

    def __init__(self, check_in: date, check_out: date, reason: str) -> None:
        self.check_in = check_in
        self.check_out = check_out
        self.reason = reason
        super().__init__(f"Invalid interval [{check_in}, {check_out}): {reason}")


class ConflictError(BookingError):
    """The requested dates overlap one or more active bookings."""

    def __init__(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        conflicting_ids: Iterable[uuid.UUID] = (),
    ) -> None:
        self.property_id = property_id
        self.check_in = check_in
        self.check_out = check_out
        self.conflicting_ids = tuple(conflicting_ids)
        detail = ", ".join(str(i) for i in self.conflicting_ids) or "unknown"
        super().__init__(
            f"Dates [{check_in}, {check_out}) conflict with existing bookings on property "
            f"{property_id}: {detail}"
        )


class NotFoundError(BookingError):
    """An id did not resolve to a stored record."""

    entity = "Record"

    def __init__(self, record_id: uuid.UUID) -> None:
        self.record_id = record_id
        super().__init__(f"{self.entity} {record_id} not found")


class BookingNotFoundError(NotFoundError):
    entity = "Booking"


class PropertyNotFoundError(NotFoundError):
    entity = "Property"


class UserNotFoundError(NotFoundError):
    entity = "User"


class InvalidStateError(BookingError):
    """The booking's current status does not allow the requested transition."""

    def __init__(self, booking_id: uuid.UUID, status: str, action: str) -> None:
        self.booking_id = booking_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} booking {booking_id} in status {status!r}")


class StorageUnavailableError(BookingError):
    """Transient infrastructure failure. Safe to retry with backoff."""


class LockTimeoutError(StorageUnavailableError):
    """Gave up waiting for another writer on the same property."""

    def __init__(self, property_id: uuid.UUID, timeout: float) -> None:
        self.property_id = property_id
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for the booking lock on property {property_id}")
