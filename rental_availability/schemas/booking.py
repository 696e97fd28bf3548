"""Pydantic v2 schemas for booking requests and results."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from rental_availability.models.booking import ACTIVE_STATUSES, BookingStatus
from rental_availability.schemas.interval import DateInterval


class BookingRequest(BaseModel):
    """A guest asking for a property over a date range."""

    model_config = ConfigDict(frozen=True)

    property_id: uuid.UUID
    user_id: uuid.UUID
    interval: DateInterval


class BookingRead(BaseModel):
    """Immutable snapshot of a stored booking, detached from any session."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    property_id: uuid.UUID
    user_id: uuid.UUID
    check_in: date
    check_out: date
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    @property
    def interval(self) -> DateInterval:
        return DateInterval(check_in=self.check_in, check_out=self.check_out)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
