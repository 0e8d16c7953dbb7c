"""Redis-backed pending token store for multi-instance deployments.

Each token is a key holding its issuance time (Unix seconds). GETDEL is a
single atomic command, so concurrent redemptions of one token yield
exactly one winner across every instance sharing the Redis.

Keys live for twice the token TTL: long enough to report an aged-out token
as expired rather than unknown, short enough that abandoned tokens vanish
on their own.
"""

import time
from typing import Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from errors import PersistenceError, TokenExpiredError
from shared.generators import generate_verification_token
from shared.logging import get_logger

log = get_logger(__name__)

_MAX_ISSUE_ATTEMPTS = 3


class RedisTokenStore:
    def __init__(
        self,
        redis_client: aioredis.Redis,
        ttl_seconds: int = 900,
        key_prefix: str = "verify-gate",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds
        self._prefix = key_prefix
        self._clock = clock

    def _key(self, token: str) -> str:
        return f"{self._prefix}:pending:{token}"

    async def issue(self) -> str:
        try:
            for _ in range(_MAX_ISSUE_ATTEMPTS):
                token = generate_verification_token()
                stored = await self._redis.set(
                    self._key(token),
                    str(self._clock()),
                    nx=True,
                    ex=self.ttl_seconds * 2,
                )
                if stored:
                    return token
        except RedisError as e:
            log.error("pending_token_issue_failed", error=str(e), error_type=type(e).__name__)
            raise PersistenceError("Token store unavailable") from e
        raise PersistenceError("Could not allocate a unique verification token")

    async def consume(self, token: str) -> bool:
        try:
            raw = await self._redis.getdel(self._key(token))
        except RedisError as e:
            log.error("pending_token_consume_failed", error=str(e), error_type=type(e).__name__)
            raise PersistenceError("Token store unavailable") from e
        if raw is None:
            return False
        try:
            issued_at = float(raw)
        except (TypeError, ValueError):
            log.warning("pending_token_malformed")
            return False
        if self._clock() - issued_at > self.ttl_seconds:
            raise TokenExpiredError("Verification token has expired")
        return True
