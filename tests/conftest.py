"""Shared test configuration and fixtures.

Every test gets a fresh database:
- By default a throwaway SQLite file under pytest's tmp_path (aiosqlite).
- Set ``TEST_DATABASE_URL`` to run against a real PostgreSQL test database;
  tables are created before and dropped after each test.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from rental_availability.database import Base, make_engine, make_session_factory
from rental_availability.models.property import Property
from rental_availability.models.user import User
from rental_availability.services.availability_service import AvailabilityService

# Reservations made in tests are judged against this "today".
TODAY = date(2025, 1, 1)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a per-test engine with all tables in place."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"
    engine = make_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A plain session for arranging rows behind the service's back."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def service(session_factory) -> AvailabilityService:
    return AvailabilityService(session_factory, lock_timeout=5.0, today=lambda: TODAY)


# ---------------------------------------------------------------------------
# Convenience fixtures: users and properties
# ---------------------------------------------------------------------------


async def _create_user(db_session: AsyncSession, role: str = "guest") -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(
        first_name="Test",
        last_name=role.capitalize(),
        email=f"{role}-{unique}@test.com",
        role=role,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def host(db_session: AsyncSession) -> User:
    return await _create_user(db_session, role="host")


@pytest_asyncio.fixture
async def guest(db_session: AsyncSession) -> User:
    return await _create_user(db_session, role="guest")


@pytest_asyncio.fixture
async def other_guest(db_session: AsyncSession) -> User:
    return await _create_user(db_session, role="guest")


async def _create_property(db_session: AsyncSession, host: User, name: str) -> Property:
    prop = Property(
        host_id=host.id,
        name=name,
        location="Toronto, ON",
        price_per_night=Decimal("120.00"),
    )
    db_session.add(prop)
    await db_session.commit()
    return prop


@pytest_asyncio.fixture
async def test_property(db_session: AsyncSession, host: User) -> Property:
    return await _create_property(db_session, host, "Cozy Apartment in Downtown")


@pytest_asyncio.fixture
async def second_property(db_session: AsyncSession, host: User) -> Property:
    return await _create_property(db_session, host, "Beachfront Villa")
