import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class UserLockRegistry:
    """One asyncio.Lock per user id, created on demand.

    Held only around state read/transition, never across a network send.
    Idle locks are dropped when released so the registry does not grow
    with every contact ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
