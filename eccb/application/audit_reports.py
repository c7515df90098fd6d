"""
===============================================================================
SERVICE: Audit Reports (listado, detalle, estadísticas, exportación)
===============================================================================

Name:
    Audit Reports Service

Business Goal:
    Dar al panel de administración una vista navegable del audit log:
    filtros, paginación, agregados y exportación CSV/JSON.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    AuditReportService

Responsibilities:
    - Normalizar paginación (page >= 1, 1 <= limit <= 100).
    - Extender date_to hasta el final de ese día.
    - Calcular ventana de estadísticas (desde la medianoche de hace N días).
    - Formatear CSV (header plano, celdas entre comillas con "" escapadas).

Collaborators:
    - domain.repositories.AuditLogRepository
    - domain.audit (AuditEntry, AuditLogFilters, AuditLogPage, AuditLogStats)

Notes:
    - La autorización (admin.audit.view) la aplica la capa HTTP vía guards.
===============================================================================
"""

from __future__ import annotations

from dataclasses import asdict, replace
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, List, Optional

from ..domain.audit import AuditEntry, AuditLogFilters, AuditLogPage, AuditLogStats
from ..domain.repositories import AuditLogRepository

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
EXPORT_MAX_ROWS = 10_000
DEFAULT_STATS_DAYS = 30
STATS_TOP_N = 10
DEFAULT_HISTORY_LIMIT = 20

CSV_HEADERS = (
    "ID",
    "Timestamp",
    "User ID",
    "User Name",
    "IP Address",
    "Action",
    "Entity Type",
    "Entity ID",
    "Old Values",
    "New Values",
)
CSV_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _as_utc(value: datetime | None) -> datetime | None:
    """Fechas sin zona (ej: ?date_from=2024-01-31) se interpretan en UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max, tzinfo=value.tzinfo)


def _csv_cell(value: Optional[str]) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def entry_to_dict(entry: AuditEntry) -> dict[str, Any]:
    data = asdict(entry)
    data["timestamp"] = entry.timestamp.isoformat()
    return data


def entries_to_csv(entries: List[AuditEntry]) -> str:
    lines = [",".join(CSV_HEADERS)]
    for e in entries:
        row = (
            e.id,
            e.timestamp.strftime(CSV_TIMESTAMP_FORMAT),
            e.user_id,
            e.user_name,
            e.ip_address,
            e.action,
            e.entity_type,
            e.entity_id,
            e.old_values,
            e.new_values,
        )
        lines.append(",".join(_csv_cell(c) for c in row))
    return "\n".join(lines)


class AuditReportService:
    def __init__(
        self,
        repository: AuditLogRepository,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._now = now

    @staticmethod
    def _normalize_filters(filters: AuditLogFilters) -> AuditLogFilters:
        date_to = _as_utc(filters.date_to)
        return replace(
            filters,
            date_from=_as_utc(filters.date_from),
            date_to=_end_of_day(date_to) if date_to is not None else None,
        )

    async def _query(
        self, filters: AuditLogFilters, page: int, limit: int
    ) -> AuditLogPage:
        logs, total = await self._repository.list_entries(
            self._normalize_filters(filters),
            offset=(page - 1) * limit,
            limit=limit,
        )
        return AuditLogPage(logs=logs, total=total, page=page, limit=limit)

    async def list_logs(
        self,
        filters: AuditLogFilters | None = None,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> AuditLogPage:
        if page < 1:
            raise ValueError("page must be >= 1")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        return await self._query(
            filters or AuditLogFilters(), page, min(limit, MAX_PAGE_SIZE)
        )

    async def get_log(self, entry_id: str) -> AuditEntry | None:
        return await self._repository.get_entry(entry_id)

    async def get_stats(self, days: int = DEFAULT_STATS_DAYS) -> AuditLogStats:
        if days < 1:
            raise ValueError("days must be >= 1")
        start = (self._now() - timedelta(days=days)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        return await self._repository.get_stats(start, top=STATS_TOP_N)

    async def unique_actions(self) -> List[str]:
        return await self._repository.distinct_actions()

    async def unique_entity_types(self) -> List[str]:
        return await self._repository.distinct_entity_types()

    async def entity_history(
        self, entity_type: str, entity_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> List[AuditEntry]:
        return await self._repository.entity_history(
            entity_type, entity_id, limit=max(1, min(limit, MAX_PAGE_SIZE))
        )

    async def export_csv(self, filters: AuditLogFilters | None = None) -> str:
        result = await self._query(filters or AuditLogFilters(), 1, EXPORT_MAX_ROWS)
        return entries_to_csv(result.logs)

    async def export_json(
        self, filters: AuditLogFilters | None = None
    ) -> list[dict[str, Any]]:
        result = await self._query(filters or AuditLogFilters(), 1, EXPORT_MAX_ROWS)
        return [entry_to_dict(e) for e in result.logs]
