"""
===============================================================================
CRC CARD — infrastructure/redis_client.py
===============================================================================

Componente:
  Cliente Redis compartido (async)

Responsabilidades:
  - Construir el cliente redis.asyncio desde REDIS_URL (decode_responses=True).
  - Cerrarlo en el shutdown.

Colaboradores:
  - infrastructure.counters.redis_store.RedisCounterStore
  - infrastructure.permission_cache.RedisPermissionCache
  - container.AppContainer (dueño del ciclo de vida)
===============================================================================
"""

from __future__ import annotations

import redis.asyncio as redis

from ..crosscutting.logger import logger

_SOCKET_TIMEOUT_SECONDS = 2.0


def create_redis_client(redis_url: str) -> redis.Redis:
    """
    Crea el cliente (lazy: no abre conexión hasta el primer comando).

    Timeouts cortos: Redis es consultivo (rate limit / cache) y una espera larga
    bloquearía requests que de todos modos van a fallar abierto.
    """
    if not redis_url:
        raise ValueError("redis_url is required")

    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=_SOCKET_TIMEOUT_SECONDS,
    )


async def close_redis_client(client: redis.Redis | None) -> None:
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as exc:
        logger.warning("Error cerrando cliente Redis", extra={"error": str(exc)})
