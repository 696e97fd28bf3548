"""Seed the database with the sample rental platform data set.

Users and properties are written directly; bookings go through the
availability service (flagged historical, since their dates are in the
past) so the seed can never contain overlapping stays.

Run from the repository root:
    python -m scripts.seed_data
"""

import asyncio
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add the repository root to the path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rental_availability.config import settings
from rental_availability.database import Base, get_engine, get_session_factory
from rental_availability.models.booking import Booking, BookingStatus
from rental_availability.models.property import Property
from rental_availability.models.user import User
from rental_availability.schemas.interval import DateInterval
from rental_availability.services.availability_service import AvailabilityService

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

USERS = [
    {"first_name": "Alice", "last_name": "Johnson", "email": "alice@example.com", "role": "guest"},
    {"first_name": "Bob", "last_name": "Smith", "email": "bob@example.com", "role": "guest"},
    {"first_name": "John", "last_name": "Doe", "email": "john@example.com", "role": "host"},
    {"first_name": "Admin", "last_name": "User", "email": "admin@example.com", "role": "admin"},
]

PROPERTIES = [
    {
        "name": "Cozy Apartment in Downtown",
        "description": "A fully furnished 2-bedroom apartment in the city center.",
        "location": "Toronto, ON",
        "price_per_night": Decimal("120.00"),
    },
    {
        "name": "Beachfront Villa",
        "description": "Luxury villa with private pool and ocean view.",
        "location": "Vancouver, BC",
        "price_per_night": Decimal("350.00"),
    },
    {
        "name": "Mountain Cabin Retreat",
        "description": "Rustic cabin with fireplace and hiking trails nearby.",
        "location": "Banff, AB",
        "price_per_night": Decimal("200.00"),
    },
]

HOST_EMAIL = "john@example.com"

# (guest email, property name, check_in, check_out, final status)
BOOKINGS = [
    ("alice@example.com", "Cozy Apartment in Downtown", date(2025, 9, 15), date(2025, 9, 20), BookingStatus.CONFIRMED),
    ("bob@example.com", "Beachfront Villa", date(2025, 10, 5), date(2025, 10, 10), BookingStatus.PENDING),
    ("alice@example.com", "Mountain Cabin Retreat", date(2025, 11, 1), date(2025, 11, 5), BookingStatus.CANCELLED),
]


async def _clear(session: AsyncSession) -> None:
    """Remove a previous seed run, bookings first."""
    emails = [u["email"] for u in USERS]
    user_ids = list(await session.scalars(select(User.id).where(User.email.in_(emails))))
    if not user_ids:
        return
    print("⚠️  Seed users already exist. Deleting and re-seeding...")
    property_ids = list(await session.scalars(select(Property.id).where(Property.host_id.in_(user_ids))))
    await session.execute(delete(Booking).where(Booking.property_id.in_(property_ids)))
    await session.execute(delete(Booking).where(Booking.user_id.in_(user_ids)))
    await session.execute(delete(Property).where(Property.id.in_(property_ids)))
    await session.execute(delete(User).where(User.id.in_(user_ids)))


async def seed(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    """Load the sample data and return how many rows of each kind were created."""
    async with session_factory() as session, session.begin():
        await _clear(session)

        users = {}
        for data in USERS:
            user = User(**data)
            session.add(user)
            users[data["email"]] = user
        await session.flush()
        print(f"✅ Created {len(users)} users")

        properties = {}
        for data in PROPERTIES:
            prop = Property(host_id=users[HOST_EMAIL].id, **data)
            session.add(prop)
            properties[data["name"]] = prop
            print(f"   🏠 {prop.name} — {prop.location} (${prop.price_per_night}/night)")
        await session.flush()

        user_ids = {email: user.id for email, user in users.items()}
        property_ids = {name: prop.id for name, prop in properties.items()}

    service = AvailabilityService(session_factory)
    for email, property_name, check_in, check_out, status in BOOKINGS:
        booking = await service.reserve(
            property_ids[property_name],
            user_ids[email],
            DateInterval(check_in=check_in, check_out=check_out),
            historical=True,
        )
        if status == BookingStatus.CONFIRMED:
            await service.confirm(booking.id)
        elif status == BookingStatus.CANCELLED:
            await service.cancel(booking.id)
    print(f"✅ Created {len(BOOKINGS)} bookings")

    return {"users": len(USERS), "properties": len(PROPERTIES), "bookings": len(BOOKINGS)}


async def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    engine = get_engine()
    if settings.is_sqlite:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    try:
        counts = await seed(get_session_factory())
    finally:
        await engine.dispose()

    print()
    print("=" * 60)
    print("📊 Seed Summary")
    print("=" * 60)
    for name, count in counts.items():
        print(f"   {name.capitalize():<12} {count}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
