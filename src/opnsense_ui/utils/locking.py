"""Per-appliance serialization of reconciliation calls."""

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import AbstractAsyncContextManager, asynccontextmanager


class KeyedLock:
    """
    One ``asyncio.Lock`` per key, created on first use and kept for the
    lifetime of the instance.

    The provider keys it by the appliance root address and holds it from the
    first table read of a verb to its final read-back. An edit page render and
    the POST replaying its token therefore never interleave with another
    caller's render. Different appliances never contend.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block::

            async with keyed_lock.acquire(config.root_uri):
                ...
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __call__(self, key: Hashable) -> AbstractAsyncContextManager[None]:
        return self.acquire(key)
