"""
===============================================================================
CRC CARD — infrastructure/counters/redis_store.py
===============================================================================

Componente:
  RedisCounterStore

Responsabilidades:
  - Implementar CounterStorePort sobre Redis.
  - INCR + EXPIRE (solo en el primer incremento) en un único script Lua:
    la secuencia es atómica aunque haya varios workers.
  - consume(): chequeo de límite + incremento en el mismo script, así dos
    requests concurrentes no pueden tomar el último slot a la vez.
  - Traducir errores del cliente a CounterStoreError.

Colaboradores:
  - redis.asyncio.Redis
  - application.rate_limiting.RateLimiter / AuthRateLimits
===============================================================================
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ...crosscutting.exceptions import CounterStoreError

# KEYS[1] = key, ARGV[1] = window (segundos)
_INCREMENT_WITH_EXPIRY = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
end
return current
"""

# KEYS[1] = key, ARGV[1] = limit, ARGV[2] = window (segundos)
# Retorna {allowed (0/1), count}; sin slot libre no incrementa.
_CONSUME_WITHIN_LIMIT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
  return {0, current}
end
current = redis.call('INCR', KEYS[1])
if current == 1 then
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
return {1, current}
"""


class RedisCounterStore:
    """Store de contadores con TTL nativo."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._increment = client.register_script(_INCREMENT_WITH_EXPIRY)
        self._consume = client.register_script(_CONSUME_WITHIN_LIMIT)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise CounterStoreError(f"GET falló para {key}", original_error=exc) from exc

    async def increment(self, key: str, window_seconds: int) -> int:
        try:
            value = await self._increment(keys=[key], args=[int(window_seconds)])
        except RedisError as exc:
            raise CounterStoreError(
                f"INCR falló para {key}", original_error=exc
            ) from exc
        return int(value)

    async def consume(
        self, key: str, limit: int, window_seconds: int
    ) -> tuple[bool, int]:
        try:
            allowed, count = await self._consume(
                keys=[key], args=[int(limit), int(window_seconds)]
            )
        except RedisError as exc:
            raise CounterStoreError(
                f"consume falló para {key}", original_error=exc
            ) from exc
        return bool(allowed), int(count)

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._client.ttl(key))
        except RedisError as exc:
            raise CounterStoreError(f"TTL falló para {key}", original_error=exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise CounterStoreError(
                f"DEL falló para {key}", original_error=exc
            ) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False
