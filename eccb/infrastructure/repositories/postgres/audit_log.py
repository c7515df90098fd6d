"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/audit_log.py
============================================================
Class: PostgresAuditLogRepository

Responsibilities:
  - Persistir entradas de auditoría en PostgreSQL (tabla audit_logs).
  - Listar con filtros opcionales + paginación + total.
  - Agregados para estadísticas (top N por acción / entidad / usuario).
  - Historial por entidad y listas de valores distintos.

Collaborators:
  - domain.audit (AuditEntry, NewAuditEntry, AuditLogFilters, AuditLogStats)
  - psycopg_pool.AsyncConnectionPool (inyectado)
  - postgres._sql helpers (DatabaseError + logging)

Constraints / Notes:
  - Repo puro: NO define políticas (qué auditar / quién puede ver).
  - Queries SIEMPRE parametrizadas (nunca interpolar input del usuario).
  - date_to se trata como cota superior inclusiva; la capa de aplicación
    ya la lleva al fin del día.
  - Orden: timestamp DESC, id DESC -> estable incluso con timestamps iguales.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from psycopg_pool import AsyncConnectionPool

from ....domain.audit import (
    AuditEntry,
    AuditLogFilters,
    AuditLogStats,
    CountByKey,
    NewAuditEntry,
)
from ._sql import fetchall, fetchone

_AUDIT_COLUMNS = (
    "id, action, entity_type, timestamp, entity_id, user_id, user_name, "
    "ip_address, user_agent, old_values, new_values"
)
_ORDER_BY = "timestamp DESC, id DESC"


def _row_to_entry(row: tuple) -> AuditEntry:
    return AuditEntry(
        id=row[0],
        action=row[1],
        entity_type=row[2],
        timestamp=row[3],
        entity_id=row[4],
        user_id=row[5],
        user_name=row[6],
        ip_address=row[7],
        user_agent=row[8],
        old_values=row[9],
        new_values=row[10],
    )


def _contains_pattern(value: str) -> str:
    """Patrón ILIKE "contiene" con % _ \\ de la entrada tratados como literales."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _build_where(filters: AuditLogFilters) -> tuple[str, list[object]]:
    conditions: list[str] = []
    params: list[object] = []

    if filters.user_id:
        conditions.append("user_id = %s")
        params.append(filters.user_id)
    if filters.user_name:
        conditions.append("user_name ILIKE %s ESCAPE '\\'")
        params.append(_contains_pattern(filters.user_name))
    if filters.action:
        conditions.append("action ILIKE %s ESCAPE '\\'")
        params.append(_contains_pattern(filters.action))
    if filters.entity_type:
        conditions.append("entity_type = %s")
        params.append(filters.entity_type)
    if filters.entity_id:
        conditions.append("entity_id = %s")
        params.append(filters.entity_id)
    if filters.date_from is not None:
        conditions.append("timestamp >= %s")
        params.append(filters.date_from)
    if filters.date_to is not None:
        conditions.append("timestamp <= %s")
        params.append(filters.date_to)

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where_clause, params


class PostgresAuditLogRepository:
    """Repositorio PostgreSQL para auditoría (audit_logs)."""

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    # ------------------------------------------------------------
    # Escritura (append-only)
    # ------------------------------------------------------------
    async def create_entry(self, entry: NewAuditEntry) -> AuditEntry:
        row = await fetchone(
            self._pool,
            query=f"""
                INSERT INTO audit_logs (
                    id, action, entity_type, entity_id, user_id, user_name,
                    ip_address, user_agent, old_values, new_values
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_AUDIT_COLUMNS}
            """,
            params=(
                str(uuid4()),
                entry.action,
                entry.entity_type,
                entry.entity_id,
                entry.user_id,
                entry.user_name,
                entry.ip_address,
                entry.user_agent,
                entry.old_values,
                entry.new_values,
            ),
            log_msg="PostgresAuditLogRepository: create_entry failed",
            log_extra={"action": entry.action, "entity_type": entry.entity_type},
        )
        return _row_to_entry(row)

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    async def list_entries(
        self, filters: AuditLogFilters, *, offset: int, limit: int
    ) -> tuple[List[AuditEntry], int]:
        where_clause, params = _build_where(filters)
        log_extra = {"offset": offset, "limit": limit}

        total_row = await fetchone(
            self._pool,
            query=f"SELECT COUNT(*) FROM audit_logs {where_clause}",
            params=params,
            log_msg="PostgresAuditLogRepository: count failed",
            log_extra=log_extra,
        )
        total = int(total_row[0]) if total_row else 0

        if limit <= 0:
            return [], total

        rows = await fetchall(
            self._pool,
            query=f"""
                SELECT {_AUDIT_COLUMNS}
                FROM audit_logs
                {where_clause}
                ORDER BY {_ORDER_BY}
                LIMIT %s OFFSET %s
            """,
            params=[*params, limit, max(0, offset)],
            log_msg="PostgresAuditLogRepository: list_entries failed",
            log_extra=log_extra,
        )
        return [_row_to_entry(row) for row in rows], total

    async def get_entry(self, entry_id: str) -> Optional[AuditEntry]:
        row = await fetchone(
            self._pool,
            query=f"SELECT {_AUDIT_COLUMNS} FROM audit_logs WHERE id = %s",
            params=(entry_id,),
            log_msg="PostgresAuditLogRepository: get_entry failed",
            log_extra={"entry_id": entry_id},
        )
        return _row_to_entry(row) if row else None

    async def _top(self, column: str, since: datetime, top: int) -> list[CountByKey]:
        # R: column viene de una whitelist interna, nunca del usuario.
        rows = await fetchall(
            self._pool,
            query=f"""
                SELECT {column}, COUNT(*) AS n
                FROM audit_logs
                WHERE timestamp >= %s AND {column} IS NOT NULL
                GROUP BY {column}
                ORDER BY n DESC, {column} ASC
                LIMIT %s
            """,
            params=(since, top),
            log_msg="PostgresAuditLogRepository: stats failed",
            log_extra={"column": column},
        )
        return [CountByKey(key=row[0], count=int(row[1])) for row in rows]

    async def get_stats(self, since: datetime, *, top: int = 10) -> AuditLogStats:
        total_row = await fetchone(
            self._pool,
            query="SELECT COUNT(*) FROM audit_logs WHERE timestamp >= %s",
            params=(since,),
            log_msg="PostgresAuditLogRepository: stats total failed",
            log_extra={"since": since.isoformat()},
        )
        return AuditLogStats(
            total_logs=int(total_row[0]) if total_row else 0,
            by_action=await self._top("action", since, top),
            by_entity_type=await self._top("entity_type", since, top),
            by_user=await self._top("user_name", since, top),
        )

    async def _distinct(self, column: str) -> List[str]:
        rows = await fetchall(
            self._pool,
            query=f"SELECT DISTINCT {column} FROM audit_logs ORDER BY {column}",
            log_msg="PostgresAuditLogRepository: distinct failed",
            log_extra={"column": column},
        )
        return [row[0] for row in rows]

    async def distinct_actions(self) -> List[str]:
        return await self._distinct("action")

    async def distinct_entity_types(self) -> List[str]:
        return await self._distinct("entity_type")

    async def entity_history(
        self, entity_type: str, entity_id: str, *, limit: int
    ) -> List[AuditEntry]:
        rows = await fetchall(
            self._pool,
            query=f"""
                SELECT {_AUDIT_COLUMNS}
                FROM audit_logs
                WHERE entity_type = %s AND entity_id = %s
                ORDER BY {_ORDER_BY}
                LIMIT %s
            """,
            params=(entity_type, entity_id, limit),
            log_msg="PostgresAuditLogRepository: entity_history failed",
            log_extra={"entity_type": entity_type, "entity_id": entity_id},
        )
        return [_row_to_entry(row) for row in rows]
