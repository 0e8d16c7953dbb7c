"""Pending verification token stores (in-process and Redis-backed)."""

from infrastructure.tokens.memory import InMemoryTokenStore
from infrastructure.tokens.protocol import PendingTokenStore
from infrastructure.tokens.redis_store import RedisTokenStore

__all__ = ["InMemoryTokenStore", "PendingTokenStore", "RedisTokenStore"]
