"""Per-origin guards serialising the dedup check and the record write."""

from infrastructure.locks.memory import InMemoryOriginGuard
from infrastructure.locks.protocol import OriginGuard
from infrastructure.locks.redis_guard import RedisOriginGuard

__all__ = ["InMemoryOriginGuard", "OriginGuard", "RedisOriginGuard"]
