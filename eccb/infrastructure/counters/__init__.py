"""Infra contadores: Redis (producción) + memoria (tests/dev)."""

from .in_memory import InMemoryCounterStore
from .redis_store import RedisCounterStore

__all__ = ["InMemoryCounterStore", "RedisCounterStore"]
