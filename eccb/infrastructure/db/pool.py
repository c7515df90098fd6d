"""
===============================================================================
CRC CARD — infrastructure/db/pool.py
===============================================================================

Componente:
  Pool de conexiones PostgreSQL (async)

Responsabilidades:
  - Crear, abrir y cerrar el pool de conexiones.
  - Configurar conexiones: statement_timeout.
  - Verificar conectividad (readiness).

Colaboradores:
  - psycopg_pool.AsyncConnectionPool
  - container.AppContainer (dueño del ciclo de vida)

Principios:
  - Sin singleton global: el container construye el pool en start() y lo
    cierra en close().
  - Fail-fast: parámetros inválidos -> ValueError, sin conexión -> DatabaseError
===============================================================================
"""

from __future__ import annotations

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from ...crosscutting.exceptions import DatabaseError
from ...crosscutting.logger import logger


def _make_configure(statement_timeout_ms: int):
    async def _configure_connection(conn: AsyncConnection) -> None:
        # Guardrail contra queries colgadas
        if statement_timeout_ms > 0:
            await conn.execute(f"SET statement_timeout = {int(statement_timeout_ms)}")
            await conn.commit()

    return _configure_connection


async def open_pool(
    database_url: str,
    *,
    min_size: int,
    max_size: int,
    statement_timeout_ms: int = 0,
) -> AsyncConnectionPool:
    """Crea y abre el pool. Espera a que haya al menos min_size conexiones."""
    if min_size < 1 or max_size < min_size:
        raise ValueError(
            f"Parámetros de pool inválidos: min={min_size} max={max_size}"
        )

    logger.info(
        "Inicializando pool DB",
        extra={"min_size": min_size, "max_size": max_size},
    )

    pool = AsyncConnectionPool(
        conninfo=database_url,
        min_size=min_size,
        max_size=max_size,
        configure=_make_configure(statement_timeout_ms),
        open=False,
    )
    try:
        await pool.open(wait=True)
    except Exception as exc:
        await pool.close()
        raise DatabaseError(
            "No se pudo abrir el pool de conexiones", original_error=exc
        ) from exc

    logger.info("Pool DB inicializado", extra={"min_size": min_size, "max_size": max_size})
    return pool


async def close_pool(pool: AsyncConnectionPool | None) -> None:
    """Cierra el pool (idempotente)."""
    if pool is None or pool.closed:
        return
    logger.info("Cerrando pool DB")
    await pool.close()
    logger.info("Pool DB cerrado")


async def ping(pool: AsyncConnectionPool) -> bool:
    try:
        async with pool.connection() as conn:
            await conn.execute("SELECT 1")
        return True
    except Exception as exc:
        logger.warning("DB ping falló", extra={"error": str(exc)})
        return False
