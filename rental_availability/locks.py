"""Per-property critical sections for the booking write path."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rental_availability.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class PropertyLocks:
    """Lock table keyed by property id.

    Locks are created on demand and dropped once nobody holds or waits on
    them, so the table only ever contains properties with writes in flight.
    All callers must share one event loop.
    """

    def __init__(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError(f"Lock timeout must be greater than zero, got {timeout!r}")
        self.timeout = timeout
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._users: dict[uuid.UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, property_id: uuid.UUID) -> bool:
        lock = self._locks.get(property_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, property_id: uuid.UUID) -> AsyncIterator[None]:
        """Hold the lock for ``property_id``, waiting at most ``self.timeout``."""
        lock = self._locks.setdefault(property_id, asyncio.Lock())
        self._users[property_id] = self._users.get(property_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("Lock wait on property %s exceeded %.1fs", property_id, self.timeout)
                raise LockTimeoutError(property_id, self.timeout) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[property_id] -= 1
            if self._users[property_id] == 0:
                del self._users[property_id]
                del self._locks[property_id]
