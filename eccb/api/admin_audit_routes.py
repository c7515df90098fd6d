"""
===============================================================================
TARJETA CRC — eccb/api/admin_audit_routes.py (Audit log: consulta y export)
===============================================================================

Responsabilidades:
  - Exponer listado filtrado/paginado, detalle, estadísticas, valores
    distintos, historial por entidad y exportación CSV/JSON.
  - Proteger todo con admin.audit.view (acciones: 429/401/403; página: 307).

Patrones aplicados:
  - Thin Controller: la lógica vive en application.audit_reports.

Colaboradores:
  - application.audit_reports.AuditReportService
  - identity.guards (require_action / require_page)
===============================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel

from ..application.audit_reports import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_PAGE_SIZE,
    DEFAULT_STATS_DAYS,
    MAX_PAGE_SIZE,
    AuditReportService,
)
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES, not_found
from ..domain.audit import AuditEntry, AuditLogFilters, AuditLogStats
from ..identity.guards import AuthContext, require_action, require_page
from ..identity.permissions import Permission

router = APIRouter(
    prefix="/admin/audit", tags=["audit"], responses=OPENAPI_ERROR_RESPONSES
)

_require_audit_view = require_action(Permission.ADMIN_AUDIT_VIEW, preset="api")


def get_audit_reports(request: Request) -> AuditReportService:
    return request.app.state.container.audit_reports


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


class AuditEntryRes(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_id: str | None
    user_id: str | None
    user_name: str | None
    ip_address: str | None
    user_agent: str | None
    old_values: str | None
    new_values: str | None
    timestamp: datetime


class AuditLogsRes(BaseModel):
    logs: list[AuditEntryRes]
    total: int
    page: int
    limit: int
    total_pages: int


class CountRes(BaseModel):
    key: str
    count: int


class AuditStatsRes(BaseModel):
    total_logs: int
    by_action: list[CountRes]
    by_entity_type: list[CountRes]
    by_user: list[CountRes]


class AuditPageRes(BaseModel):
    user_id: str
    actions: list[str]
    entity_types: list[str]


def _to_res(entry: AuditEntry) -> AuditEntryRes:
    return AuditEntryRes(
        id=entry.id,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        user_id=entry.user_id,
        user_name=entry.user_name,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        old_values=entry.old_values,
        new_values=entry.new_values,
        timestamp=entry.timestamp,
    )


def _stats_res(stats: AuditLogStats) -> AuditStatsRes:
    def counts(items):
        return [CountRes(key=c.key, count=c.count) for c in items]

    return AuditStatsRes(
        total_logs=stats.total_logs,
        by_action=counts(stats.by_action),
        by_entity_type=counts(stats.by_entity_type),
        by_user=counts(stats.by_user),
    )


def audit_filters(
    user_id: str | None = None,
    user_name: str | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> AuditLogFilters:
    """Query params -> AuditLogFilters (vacíos se ignoran)."""
    return AuditLogFilters(
        user_id=user_id or None,
        user_name=user_name or None,
        action=action or None,
        entity_type=entity_type or None,
        entity_id=entity_id or None,
        date_from=date_from,
        date_to=date_to,
    )


# -----------------------------------------------------------------------------
# Página (redirect si no hay sesión/permiso)
# -----------------------------------------------------------------------------


@router.get("", response_model=AuditPageRes, summary="Bootstrap de la página de auditoría")
async def audit_page(
    ctx: AuthContext = Depends(require_page(Permission.ADMIN_AUDIT_VIEW)),
    service: AuditReportService = Depends(get_audit_reports),
):
    return AuditPageRes(
        user_id=ctx.user.id,
        actions=await service.unique_actions(),
        entity_types=await service.unique_entity_types(),
    )


# -----------------------------------------------------------------------------
# Acciones
# -----------------------------------------------------------------------------


@router.get("/logs", response_model=AuditLogsRes)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    filters: AuditLogFilters = Depends(audit_filters),
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    result = await service.list_logs(filters, page=page, limit=limit)
    return AuditLogsRes(
        logs=[_to_res(e) for e in result.logs],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/logs/{log_id}", response_model=AuditEntryRes)
async def get_audit_log(
    log_id: str,
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    entry = await service.get_log(log_id)
    if entry is None:
        raise not_found("Audit log", log_id)
    return _to_res(entry)


@router.get("/stats", response_model=AuditStatsRes)
async def audit_stats(
    days: int = Query(DEFAULT_STATS_DAYS, ge=1, le=366),
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    return _stats_res(await service.get_stats(days))


@router.get("/actions", response_model=list[str])
async def audit_actions(
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    return await service.unique_actions()


@router.get("/entity-types", response_model=list[str])
async def audit_entity_types(
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    return await service.unique_entity_types()


@router.get("/entities/{entity_type}/{entity_id}", response_model=list[AuditEntryRes])
async def audit_entity_history(
    entity_type: str,
    entity_id: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_PAGE_SIZE),
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    entries = await service.entity_history(entity_type, entity_id, limit)
    return [_to_res(e) for e in entries]


@router.get("/export.csv", response_class=Response)
async def export_audit_csv(
    filters: AuditLogFilters = Depends(audit_filters),
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    body = await service.export_csv(filters)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="audit-logs.csv"'},
    )


@router.get("/export.json")
async def export_audit_json(
    filters: AuditLogFilters = Depends(audit_filters),
    _ctx: AuthContext = Depends(_require_audit_view),
    service: AuditReportService = Depends(get_audit_reports),
):
    return await service.export_json(filters)
