"""Concurrent writers against the availability service."""

import asyncio
from datetime import date, timedelta
from itertools import combinations

import pytest

from rental_availability.errors import ConflictError, LockTimeoutError, StorageUnavailableError
from rental_availability.models.property import Property
from rental_availability.models.user import User
from rental_availability.schemas.booking import BookingRead
from rental_availability.schemas.interval import DateInterval
from rental_availability.services.availability_service import AvailabilityService

pytestmark = pytest.mark.asyncio


def _stay(check_in: date, nights: int) -> DateInterval:
    return DateInterval(check_in=check_in, check_out=check_in + timedelta(days=nights))


async def test_racing_overlapping_reserves_only_one_wins(
    service: AvailabilityService, test_property: Property, guest: User, other_guest: User
) -> None:
    results = await asyncio.gather(
        service.reserve(test_property.id, guest.id, _stay(date(2025, 1, 10), 5)),
        service.reserve(test_property.id, other_guest.id, _stay(date(2025, 1, 12), 6)),
        return_exceptions=True,
    )

    successes = [r for r in results if isinstance(r, BookingRead)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(successes) == 1
    assert len(conflicts) == 1
    assert conflicts[0].conflicting_ids == (successes[0].id,)


async def test_many_racing_reserves_keep_ranges_disjoint(
    service: AvailabilityService, test_property: Property, guest: User
) -> None:
    start = date(2025, 3, 1)
    # Every request overlaps its neighbours by two nights
    requests = [_stay(start + timedelta(days=2 * i), 4) for i in range(12)]

    results = await asyncio.gather(
        *(service.reserve(test_property.id, guest.id, interval) for interval in requests),
        return_exceptions=True,
    )

    assert all(isinstance(r, (BookingRead, ConflictError)) for r in results)
    won = [r for r in results if isinstance(r, BookingRead)]
    assert won
    for left, right in combinations(won, 2):
        assert not left.interval.overlaps(right.interval)

    stored = await service.list_bookings(property_id=test_property.id)
    assert {b.id for b in stored} == {b.id for b in won}


async def test_racing_cancel_is_idempotent(
    service: AvailabilityService, test_property: Property, guest: User
) -> None:
    booking = await service.reserve(test_property.id, guest.id, _stay(date(2025, 1, 10), 3))

    results = await asyncio.gather(*(service.cancel(booking.id) for _ in range(5)))

    assert {r.status.value for r in results} == {"cancelled"}
    assert len(service.locks) == 0


async def test_other_properties_are_not_blocked(
    service: AvailabilityService, test_property: Property, second_property: Property, guest: User
) -> None:
    async with service.locks.hold(test_property.id):
        booking = await asyncio.wait_for(
            service.reserve(second_property.id, guest.id, _stay(date(2025, 1, 10), 2)),
            timeout=5,
        )
        assert booking.property_id == second_property.id
        assert service.locks.is_locked(test_property.id)


async def test_lock_wait_is_bounded(
    session_factory, test_property: Property, guest: User
) -> None:
    impatient = AvailabilityService(session_factory, lock_timeout=0.05, today=lambda: date(2025, 1, 1))

    async with impatient.locks.hold(test_property.id):
        with pytest.raises(LockTimeoutError) as exc_info:
            await impatient.reserve(test_property.id, guest.id, _stay(date(2025, 1, 10), 2))

    assert isinstance(exc_info.value, StorageUnavailableError)
    assert exc_info.value.property_id == test_property.id

    # The lock is usable again once released
    booking = await impatient.reserve(test_property.id, guest.id, _stay(date(2025, 1, 10), 2))
    assert booking.property_id == test_property.id


async def test_reads_proceed_while_a_write_lock_is_held(
    service: AvailabilityService, test_property: Property
) -> None:
    async with service.locks.hold(test_property.id):
        available = await asyncio.wait_for(
            service.check_availability(test_property.id, _stay(date(2025, 1, 10), 2)),
            timeout=5,
        )
    assert available is True
