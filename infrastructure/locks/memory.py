"""In-process per-origin guard.

One asyncio.Lock per origin, created on demand and dropped when the last
holder or waiter leaves. Attempts from different origins never contend.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from errors import OriginBusyError


class InMemoryOriginGuard:
    def __init__(self, wait_seconds: float = 15.0) -> None:
        self.wait_seconds = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, origin: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(origin, asyncio.Lock())
        self._users[origin] = self._users.get(origin, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except asyncio.TimeoutError as e:
                raise OriginBusyError("Another verification from this origin is in progress") from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[origin] -= 1
            if self._users[origin] == 0:
                del self._users[origin]
                del self._locks[origin]
