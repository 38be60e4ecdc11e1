"""Per-entity async locks.

Metrics are a single upserted row per entity, so two recomputes of the
same entity racing on read-modify-write could interleave analysis and
save. ``EntityLockRegistry`` serialises work per entity id within one
process; entries are reference counted and dropped once nobody holds or
waits on them, so the registry does not grow with the entity count.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class EntityLockRegistry:
    """Hands out one ``asyncio.Lock`` per entity id."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._refcounts: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, entity_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = self._locks[entity_id] = asyncio.Lock()
        self._refcounts[entity_id] = self._refcounts.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refcounts[entity_id] -= 1
            if self._refcounts[entity_id] == 0:
                del self._refcounts[entity_id]
                del self._locks[entity_id]

    def is_locked(self, entity_id: int) -> bool:
        lock = self._locks.get(entity_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
