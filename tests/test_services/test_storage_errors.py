"""Infrastructure failures surface as typed engine errors."""

import uuid
from datetime import date
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from rental_availability.database import make_engine, make_session_factory
from rental_availability.errors import ConflictError, StorageUnavailableError
from rental_availability.schemas.interval import DateInterval
from rental_availability.services.availability_service import (
    AvailabilityService,
    _flush_stay,
    _is_overlap_violation,
)

STAY = DateInterval(check_in=date(2025, 1, 10), check_out=date(2025, 1, 15))


class _PgError(Exception):
    """Stand-in for a driver error carrying a SQLSTATE."""

    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


@pytest_asyncio.fixture
async def unreachable_service(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nested' / 'db.sqlite'}", echo=False)
    yield AvailabilityService(make_session_factory(engine), today=lambda: date(2025, 1, 1))
    await engine.dispose()


class TestStorageUnavailable:
    async def test_reserve(self, unreachable_service: AvailabilityService) -> None:
        with pytest.raises(StorageUnavailableError):
            await unreachable_service.reserve(uuid.uuid4(), uuid.uuid4(), STAY)
        assert len(unreachable_service.locks) == 0

    async def test_check_availability(self, unreachable_service: AvailabilityService) -> None:
        with pytest.raises(StorageUnavailableError):
            await unreachable_service.check_availability(uuid.uuid4(), STAY)

    async def test_cancel(self, unreachable_service: AvailabilityService) -> None:
        with pytest.raises(StorageUnavailableError):
            await unreachable_service.cancel(uuid.uuid4())

    async def test_list_conflicts_fails_on_iteration(self, unreachable_service: AvailabilityService) -> None:
        scan = unreachable_service.list_conflicts(uuid.uuid4(), STAY)
        with pytest.raises(StorageUnavailableError):
            await scan.all()


class TestOverlapConstraint:
    """PostgreSQL exclusion-constraint violations are reported as conflicts."""

    def test_detects_exclusion_sqlstate(self) -> None:
        exc = IntegrityError("INSERT INTO bookings ...", {}, _PgError("conflicting key value", "23P01"))
        assert _is_overlap_violation(exc) is True

    def test_detects_constraint_name(self) -> None:
        orig = Exception('violates exclusion constraint "ex_bookings_no_overlap"')
        exc = IntegrityError("INSERT INTO bookings ...", {}, orig)
        assert _is_overlap_violation(exc) is True

    def test_ignores_other_integrity_errors(self) -> None:
        exc = IntegrityError("INSERT INTO bookings ...", {}, _PgError("foreign key violation", "23503"))
        assert _is_overlap_violation(exc) is False

    async def test_flush_maps_overlap_to_conflict(self) -> None:
        property_id = uuid.uuid4()
        session = AsyncMock()
        session.flush.side_effect = IntegrityError("INSERT", {}, _PgError("overlap", "23P01"))

        with pytest.raises(ConflictError) as exc_info:
            await _flush_stay(session, property_id, STAY)

        assert exc_info.value.property_id == property_id
        assert exc_info.value.conflicting_ids == ()

    async def test_flush_reraises_other_integrity_errors(self) -> None:
        session = AsyncMock()
        session.flush.side_effect = IntegrityError("INSERT", {}, _PgError("fk", "23503"))

        with pytest.raises(IntegrityError):
            await _flush_stay(session, uuid.uuid4(), STAY)
