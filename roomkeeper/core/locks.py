"""Per-room mutual exclusion for reservation writes.

Within one process every reserve/cancel on a room runs under that room's
``asyncio.Lock``. Across processes the row lock taken on the room inside the
transaction provides the same exclusion.
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from .errors import Conflict

logger = logging.getLogger(__name__)


class RoomLocks:
    """Registry of per-room locks, dropped once nobody holds or waits on them."""

    def __init__(self, timeout_seconds: float) -> None:
        self._timeout = timeout_seconds
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, room_id: int) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, room_ids: Iterable[int]) -> AsyncIterator[None]:
        """Hold the locks of every room in ``room_ids``.

        Locks are taken in ascending room id order so two multi-room holders
        cannot deadlock. Raises ``Conflict`` if a lock is not acquired within
        the timeout.
        """
        ordered = sorted(set(room_ids))
        # strong references keep the locks alive while held
        locks = [self._lock_for(room_id) for room_id in ordered]
        acquired: list[asyncio.Lock] = []
        try:
            for room_id, lock in zip(ordered, locks):
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self._timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Room lock wait timed out",
                        extra={"room_id": room_id, "timeout_seconds": self._timeout}
                    )
                    raise Conflict() from None
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def is_locked(self, room_id: int) -> bool:
        lock = self._locks.get(room_id)
        return lock is not None and lock.locked()
