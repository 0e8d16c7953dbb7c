"""In-process pending token store.

Suitable for a single worker process. Check-and-remove happens under one
asyncio.Lock, so two callbacks racing on the same token see exactly one
True. The lock only ever guards dict operations, never I/O.
"""

import asyncio
import time
from typing import Callable

from errors import TokenExpiredError
from shared.generators import generate_verification_token
from shared.logging import get_logger

log = get_logger(__name__)


class InMemoryTokenStore:
    def __init__(
        self,
        ttl_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._issued: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, token: str) -> bool:
        return token in self._issued

    def __len__(self) -> int:
        return len(self._issued)

    def _expired(self, issued_at: float, now: float) -> bool:
        return now - issued_at > self.ttl_seconds

    async def issue(self) -> str:
        async with self._lock:
            now = self._clock()
            self._prune(now)
            token = generate_verification_token()
            while token in self._issued:
                token = generate_verification_token()
            self._issued[token] = now
            return token

    async def consume(self, token: str) -> bool:
        async with self._lock:
            issued_at = self._issued.pop(token, None)
        if issued_at is None:
            return False
        if self._expired(issued_at, self._clock()):
            raise TokenExpiredError("Verification token has expired")
        return True

    def _prune(self, now: float) -> None:
        stale = [t for t, issued_at in self._issued.items() if self._expired(issued_at, now)]
        for token in stale:
            del self._issued[token]
        if stale:
            log.debug("pending_tokens_pruned", count=len(stale))
