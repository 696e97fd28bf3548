"""SQLAlchemy models for the rental availability engine.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from rental_availability.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from rental_availability.models.property import Property
from rental_availability.models.user import User

__all__ = [
    "ACTIVE_STATUSES",
    "Booking",
    "BookingStatus",
    "Property",
    "User",
]
