"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/_sql.py
============================================================
Responsibilities:
  - Helpers async compartidos por los repos PostgreSQL.
  - Centralizar logging + DatabaseError (encadenado con `from exc`).

Collaborators:
  - psycopg_pool.AsyncConnectionPool
  - crosscutting.exceptions.DatabaseError
  - crosscutting.logger.logger

Constraints:
  - Queries SIEMPRE parametrizadas.
  - Cada helper usa su propia conexión; el pool hace commit al salir del
    bloque si no hubo excepción.
============================================================
"""

from __future__ import annotations

from typing import Iterable

from psycopg_pool import AsyncConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger


async def fetchone(
    pool: AsyncConnectionPool,
    *,
    query: str,
    params: Iterable[object] = (),
    log_msg: str,
    log_extra: dict[str, object],
) -> tuple | None:
    try:
        async with pool.connection() as conn:
            cur = await conn.execute(query, tuple(params))
            return await cur.fetchone()
    except Exception as exc:
        logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
        raise DatabaseError(f"{log_msg}: {exc}", original_error=exc) from exc


async def fetchall(
    pool: AsyncConnectionPool,
    *,
    query: str,
    params: Iterable[object] = (),
    log_msg: str,
    log_extra: dict[str, object],
) -> list[tuple]:
    try:
        async with pool.connection() as conn:
            cur = await conn.execute(query, tuple(params))
            return await cur.fetchall()
    except Exception as exc:
        logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
        raise DatabaseError(f"{log_msg}: {exc}", original_error=exc) from exc


async def execute(
    pool: AsyncConnectionPool,
    *,
    query: str,
    params: Iterable[object] = (),
    log_msg: str,
    log_extra: dict[str, object],
) -> int:
    """Ejecuta un statement de escritura y devuelve rowcount."""
    try:
        async with pool.connection() as conn:
            cur = await conn.execute(query, tuple(params))
            return cur.rowcount
    except Exception as exc:
        logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
        raise DatabaseError(f"{log_msg}: {exc}", original_error=exc) from exc
