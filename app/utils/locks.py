"""Per-entity locking for timer transitions."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable
from weakref import WeakValueDictionary


class EntityLockRegistry:
    """
    Hands out one asyncio.Lock per key.

    Locks are held weakly: once no coroutine holds or waits on a key's lock
    it is dropped, so the registry does not grow with every entity ever
    touched.
    """

    def __init__(self):
        self._locks: "WeakValueDictionary[Hashable, asyncio.Lock]" = WeakValueDictionary()

    def get(self, key: Hashable) -> asyncio.Lock:
        """Return the lock for ``key``, creating it if needed."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Serialize the enclosed block against other holders of ``key``."""
        lock = self.get(key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registry shared by all requests
entity_locks = EntityLockRegistry()
