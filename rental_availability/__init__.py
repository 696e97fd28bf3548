"""Booking availability and conflict detection for short-term rentals."""

from rental_availability.errors import (
    BookingError,
    BookingNotFoundError,
    ConflictError,
    InvalidIntervalError,
    InvalidStateError,
    LockTimeoutError,
    NotFoundError,
    PropertyNotFoundError,
    StorageUnavailableError,
    UserNotFoundError,
)
from rental_availability.models.booking import BookingStatus
from rental_availability.schemas.booking import BookingRead, BookingRequest
from rental_availability.schemas.interval import DateInterval
from rental_availability.services.availability_service import AvailabilityService, BookingScan

__all__ = [
    "AvailabilityService",
    "BookingError",
    "BookingNotFoundError",
    "BookingRead",
    "BookingRequest",
    "BookingScan",
    "BookingStatus",
    "ConflictError",
    "DateInterval",
    "InvalidIntervalError",
    "InvalidStateError",
    "LockTimeoutError",
    "NotFoundError",
    "PropertyNotFoundError",
    "StorageUnavailableError",
    "UserNotFoundError",
]
