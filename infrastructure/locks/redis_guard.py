"""Redis per-origin guard for multi-instance deployments.

Acquire is SET NX EX with a random owner value, polled until the wait
window closes. Release runs a compare-and-delete script so an instance
whose lock already expired can never delete a lock taken over by another.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from errors import OriginBusyError, PersistenceError
from shared.generators import generate_lock_owner
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisOriginGuard:
    def __init__(
        self,
        redis_client: aioredis.Redis,
        lock_ttl: int = 60,
        wait_seconds: float = 15.0,
        poll_interval: float = 0.1,
        key_prefix: str = "verify-gate",
    ) -> None:
        self._redis = redis_client
        self.lock_ttl = lock_ttl
        self.wait_seconds = wait_seconds
        self.poll_interval = poll_interval
        self._prefix = key_prefix
        self._release = redis_client.register_script(_RELEASE_SCRIPT)

    def _key(self, origin: str) -> str:
        return f"{self._prefix}:origin-lock:{origin}"

    async def _acquire(self, key: str, owner: str) -> bool:
        deadline = time.monotonic() + self.wait_seconds
        while True:
            if await self._redis.set(key, owner, nx=True, ex=self.lock_ttl):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    @asynccontextmanager
    async def hold(self, origin: str) -> AsyncIterator[None]:
        key = self._key(origin)
        owner = generate_lock_owner()
        try:
            acquired = await self._acquire(key, owner)
        except RedisError as e:
            log.error("origin_lock_unavailable", error=str(e), error_type=type(e).__name__)
            raise PersistenceError("Origin guard unavailable") from e
        if not acquired:
            log.info("origin_lock_contention", origin_hash=hash_ip(origin))
            raise OriginBusyError("Another verification from this origin is in progress")
        try:
            yield
        finally:
            try:
                await self._release(keys=[key], args=[owner])
            except RedisError as e:
                # Lock expires on its own after lock_ttl
                log.warning("origin_lock_release_failed", error=str(e))
