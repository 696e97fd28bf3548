"""Booking model — per-property date reservations."""

import enum
import uuid
from datetime import date

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from rental_availability.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Statuses that hold their date range against other bookings.
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A guest's stay at a property over the half-open range [check_in, check_out).

    Rows are never deleted; cancellation only flips ``status``.
    """

    __tablename__ = "bookings"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            create_constraint=True,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Range scans for conflict detection walk the composite index.
    __table_args__ = (
        CheckConstraint("check_in < check_out", name="ck_bookings_check_in_before_check_out"),
        Index("ix_bookings_property_check_in", "property_id", "check_in"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, property_id={self.property_id}, "
            f"[{self.check_in}, {self.check_out}), status={self.status.value})>"
        )
