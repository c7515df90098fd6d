"""
===============================================================================
CRC CARD — infrastructure/permission_cache.py
===============================================================================

Componentes:
  - RedisPermissionCache
  - InMemoryPermissionCache

Responsabilidades:
  - Guardar strings (JSON) con TTL para el Permission Resolver
    (keys permissions:<id> / roles:<id>).
  - Ser transparente: los errores se propagan y el resolver decide el fallback
    (lectura -> DB, escritura -> log).

Colaboradores:
  - redis.asyncio.Redis (SETEX / GET / DEL)
  - identity.resolver.PermissionResolver
===============================================================================
"""

from __future__ import annotations

import time
from typing import Callable, Optional

import redis.asyncio as redis


class RedisPermissionCache:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        await self._client.setex(key, ttl_seconds, value)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self._client.delete(*keys)


class InMemoryPermissionCache:
    """Cache en memoria con TTL (tests / dev)."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
