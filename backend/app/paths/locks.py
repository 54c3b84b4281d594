"""Per-owner mutual exclusion for folder tree mutations."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

log = logging.getLogger(__name__)


class OwnerLocks:
    """One asyncio.Lock per owner id, created on first use."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, owner_id: str) -> asyncio.Lock:
        """Get or create the lock for owner_id."""
        if owner_id not in self._locks:
            self._locks[owner_id] = asyncio.Lock()
        return self._locks[owner_id]

    def is_locked(self, owner_id: str) -> bool:
        lock = self._locks.get(owner_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        """Serialize tree mutations of one owner."""
        lock = self._get_lock(owner_id)
        if lock.locked():
            log.debug("Waiting for folder tree lock owner=%s", owner_id)
        async with lock:
            yield


owner_locks = OwnerLocks()
