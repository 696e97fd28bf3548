"""Availability service: conflict-free reservations per property.

Every write runs inside a per-property critical section:

1. the in-process ``PropertyLocks`` entry for the property is held,
2. a fresh transaction locks the property row (``SELECT ... FOR UPDATE``
   on PostgreSQL, a no-op on SQLite),
3. overlapping active bookings are looked up and the write is applied,
4. the transaction commits before the lock is released.

On PostgreSQL the ``ex_bookings_no_overlap`` exclusion constraint backs this
up for writers that do not share the lock table; its violations surface as
``ConflictError`` too.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import date

from sqlalchemy import Select, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rental_availability.config import settings
from rental_availability.errors import (
    BookingNotFoundError,
    ConflictError,
    InvalidIntervalError,
    InvalidStateError,
    PropertyNotFoundError,
    StorageUnavailableError,
    UserNotFoundError,
)
from rental_availability.locks import PropertyLocks
from rental_availability.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from rental_availability.models.property import Property
from rental_availability.models.user import User
from rental_availability.schemas.booking import BookingRead, BookingRequest
from rental_availability.schemas.interval import DateInterval

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT = "ex_bookings_no_overlap"
_EXCLUSION_VIOLATION = "23P01"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate infrastructure failures into ``StorageUnavailableError``."""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
        logger.warning("%s failed: storage unavailable (%s)", operation, exc.__class__.__name__)
        raise StorageUnavailableError(f"{operation} failed: {exc}") from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        logger.warning("%s failed: connection invalidated", operation)
        raise StorageUnavailableError(f"{operation} failed: {exc}") from exc


def _is_overlap_violation(exc: IntegrityError) -> bool:
    code = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    return code == _EXCLUSION_VIOLATION or OVERLAP_CONSTRAINT in str(exc.orig)


async def _flush_stay(session: AsyncSession, property_id: uuid.UUID, interval: DateInterval) -> None:
    """Flush pending stay changes, reporting the overlap constraint as a conflict."""
    try:
        await session.flush()
    except IntegrityError as exc:
        if not _is_overlap_violation(exc):
            raise
        logger.warning("Stay %s on property %s hit %s", interval, property_id, OVERLAP_CONSTRAINT)
        raise ConflictError(property_id, interval.check_in, interval.check_out) from exc


def _overlapping(property_id: uuid.UUID, interval: DateInterval) -> Select:
    """Active bookings of ``property_id`` that share at least one night with ``interval``."""
    return (
        select(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.check_in < interval.check_out,
            Booking.check_out > interval.check_in,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Booking.check_in, Booking.id)
    )


async def _require_property(session: AsyncSession, property_id: uuid.UUID, *, lock: bool = False) -> None:
    stmt = select(Property.id).where(Property.id == property_id)
    if lock:
        stmt = stmt.with_for_update()
    if await session.scalar(stmt) is None:
        raise PropertyNotFoundError(property_id)


def _require_ordered(interval: DateInterval) -> None:
    if not interval.is_valid:
        raise InvalidIntervalError(interval.check_in, interval.check_out, "check_out must be after check_in")


class BookingScan:
    """Lazy, restartable view over the active bookings overlapping an interval.

    Nothing is read until iteration starts, and every new ``async for``
    re-runs the query against committed data::

        async for booking in service.list_conflicts(property_id, interval):
            ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        property_id: uuid.UUID,
        interval: DateInterval,
    ) -> None:
        self._session_factory = session_factory
        self.property_id = property_id
        self.interval = interval

    def __aiter__(self) -> AsyncIterator[BookingRead]:
        return self._scan()

    async def _scan(self) -> AsyncIterator[BookingRead]:
        with _storage_errors("list_conflicts"):
            async with self._session_factory() as session:
                await _require_property(session, self.property_id)
                result = await session.scalars(_overlapping(self.property_id, self.interval))
                rows = [BookingRead.model_validate(b) for b in result]
        for row in rows:
            yield row

    async def all(self) -> list[BookingRead]:
        return [booking async for booking in self]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AvailabilityService:
    """Owns the no-overlap and stay-validity invariants for bookings.

    One instance should be shared by every caller in a process (one event
    loop): the lock table lives on the instance.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock_timeout: float | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._session_factory = session_factory
        self._today = today
        self.locks = PropertyLocks(
            settings.booking_lock_timeout_seconds if lock_timeout is None else lock_timeout
        )

    # -- validation ---------------------------------------------------------

    def _validate_stay(self, interval: DateInterval, *, historical: bool = False) -> None:
        _require_ordered(interval)
        if not historical and interval.check_in < self._today():
            raise InvalidIntervalError(interval.check_in, interval.check_out, "check_in is in the past")

    # -- reads --------------------------------------------------------------

    async def check_availability(self, property_id: uuid.UUID, interval: DateInterval) -> bool:
        """Return True if no pending or confirmed booking overlaps ``interval``."""
        _require_ordered(interval)
        with _storage_errors("check_availability"):
            async with self._session_factory() as session:
                await _require_property(session, property_id)
                clash = await session.scalar(_overlapping(property_id, interval).with_only_columns(Booking.id).limit(1))
        return clash is None

    def list_conflicts(self, property_id: uuid.UUID, interval: DateInterval) -> BookingScan:
        _require_ordered(interval)
        return BookingScan(self._session_factory, property_id, interval)

    async def get_booking(self, booking_id: uuid.UUID) -> BookingRead:
        with _storage_errors("get_booking"):
            async with self._session_factory() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise BookingNotFoundError(booking_id)
                return BookingRead.model_validate(booking)

    async def list_bookings(
        self,
        *,
        property_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
        status: BookingStatus | None = None,
    ) -> list[BookingRead]:
        """Booking history, latest check-in first."""
        query = select(Booking)
        if property_id is not None:
            query = query.where(Booking.property_id == property_id)
        if user_id is not None:
            query = query.where(Booking.user_id == user_id)
        if status is not None:
            query = query.where(Booking.status == status)
        query = query.order_by(Booking.check_in.desc(), Booking.id)

        with _storage_errors("list_bookings"):
            async with self._session_factory() as session:
                result = await session.scalars(query)
                return [BookingRead.model_validate(b) for b in result]

    # -- writes -------------------------------------------------------------

    async def reserve(
        self,
        property_id: uuid.UUID,
        user_id: uuid.UUID,
        interval: DateInterval,
        *,
        status: BookingStatus = BookingStatus.PENDING,
        historical: bool = False,
    ) -> BookingRead:
        """Create a booking if ``interval`` is free on ``property_id``.

        ``historical`` lifts the no-backdating rule for imports and seed
        data; the overlap rule still applies.
        """
        status = BookingStatus(status)
        if status not in ACTIVE_STATUSES:
            raise ValueError(f"New bookings must be pending or confirmed, not {status.value!r}")
        self._validate_stay(interval, historical=historical)

        with _storage_errors("reserve"):
            async with self.locks.hold(property_id):
                async with self._session_factory() as session, session.begin():
                    await _require_property(session, property_id, lock=True)
                    if await session.get(User, user_id) is None:
                        raise UserNotFoundError(user_id)

                    conflicts = list(await session.scalars(_overlapping(property_id, interval)))
                    if conflicts:
                        logger.warning(
                            "Reservation %s on property %s rejected: overlaps %d booking(s)",
                            interval,
                            property_id,
                            len(conflicts),
                        )
                        raise ConflictError(
                            property_id, interval.check_in, interval.check_out, (b.id for b in conflicts)
                        )

                    booking = Booking(
                        property_id=property_id,
                        user_id=user_id,
                        check_in=interval.check_in,
                        check_out=interval.check_out,
                        status=status,
                    )
                    session.add(booking)
                    await _flush_stay(session, property_id, interval)
                    await session.refresh(booking)
                    snapshot = BookingRead.model_validate(booking)

        logger.info(
            "Reserved booking %s on property %s for user %s %s (%s)",
            snapshot.id,
            property_id,
            user_id,
            interval,
            snapshot.status.value,
        )
        return snapshot

    async def submit(
        self,
        request: BookingRequest,
        *,
        status: BookingStatus = BookingStatus.PENDING,
        historical: bool = False,
    ) -> BookingRead:
        """``reserve`` for a ``BookingRequest``."""
        return await self.reserve(
            request.property_id, request.user_id, request.interval, status=status, historical=historical
        )

    @asynccontextmanager
    async def _locked_booking(self, booking_id: uuid.UUID) -> AsyncIterator[tuple[AsyncSession, Booking]]:
        """Open a transaction holding ``booking_id`` and its property's lock."""
        async with self._session_factory() as session:
            property_id = await session.scalar(select(Booking.property_id).where(Booking.id == booking_id))
        if property_id is None:
            raise BookingNotFoundError(booking_id)

        async with self.locks.hold(property_id):
            async with self._session_factory() as session, session.begin():
                await _require_property(session, property_id, lock=True)
                booking = await session.scalar(select(Booking).where(Booking.id == booking_id).with_for_update())
                yield session, booking

    async def confirm(self, booking_id: uuid.UUID) -> BookingRead:
        """Move a pending booking to confirmed, re-checking for overlaps first."""
        with _storage_errors("confirm"):
            async with self._locked_booking(booking_id) as (session, booking):
                if booking.status != BookingStatus.PENDING:
                    raise InvalidStateError(booking_id, booking.status.value, "confirm")

                interval = DateInterval(check_in=booking.check_in, check_out=booking.check_out)
                clashes = await session.scalars(
                    _overlapping(booking.property_id, interval).where(Booking.id != booking.id)
                )
                conflict_ids = [b.id for b in clashes]
                if conflict_ids:
                    logger.warning("Confirmation of booking %s blocked by %s", booking_id, conflict_ids)
                    raise ConflictError(booking.property_id, booking.check_in, booking.check_out, conflict_ids)

                booking.status = BookingStatus.CONFIRMED
                await session.flush()
                await session.refresh(booking)
                snapshot = BookingRead.model_validate(booking)

        logger.info("Confirmed booking %s", booking_id)
        return snapshot

    async def cancel(self, booking_id: uuid.UUID) -> BookingRead:
        """Cancel a booking. Cancelling twice returns the cancelled booking again."""
        with _storage_errors("cancel"):
            async with self._locked_booking(booking_id) as (session, booking):
                if booking.status == BookingStatus.CANCELLED:
                    return BookingRead.model_validate(booking)

                previous = booking.status
                booking.status = BookingStatus.CANCELLED
                await session.flush()
                await session.refresh(booking)
                snapshot = BookingRead.model_validate(booking)

        logger.info("Cancelled booking %s (was %s)", booking_id, previous.value)
        return snapshot

    async def reschedule(self, booking_id: uuid.UUID, interval: DateInterval) -> BookingRead:
        """Move an active booking to new dates on the same property."""
        self._validate_stay(interval)

        with _storage_errors("reschedule"):
            async with self._locked_booking(booking_id) as (session, booking):
                if booking.status == BookingStatus.CANCELLED:
                    raise InvalidStateError(booking_id, booking.status.value, "reschedule")

                clashes = await session.scalars(
                    _overlapping(booking.property_id, interval).where(Booking.id != booking.id)
                )
                conflict_ids = [b.id for b in clashes]
                if conflict_ids:
                    raise ConflictError(booking.property_id, interval.check_in, interval.check_out, conflict_ids)

                previous = DateInterval(check_in=booking.check_in, check_out=booking.check_out)
                booking.check_in = interval.check_in
                booking.check_out = interval.check_out
                await _flush_stay(session, booking.property_id, interval)
                await session.refresh(booking)
                snapshot = BookingRead.model_validate(booking)

        logger.info("Rescheduled booking %s from %s to %s", booking_id, previous, interval)
        return snapshot
