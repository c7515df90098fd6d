"""
===============================================================================
TARJETA CRC — eccb/api/admin_roles_routes.py (Asignación de roles)
===============================================================================

Responsabilidades:
  - Listar roles, asignar y quitar roles a usuarios.
  - Proteger con admin.users.manage + preset admin_action.
  - Traducir errores tipados del caso de uso a HTTP (404 / 409).

Colaboradores:
  - application.role_assignment.RoleAssignmentService
  - audit.AuditLogger
  - identity.guards.require_action
===============================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ..application.role_assignment import (
    RoleAssignmentError,
    RoleAssignmentErrorCode,
    RoleAssignmentService,
)
from ..audit import AuditLogger, get_audit_logger
from ..crosscutting.error_responses import (
    OPENAPI_ERROR_RESPONSES,
    conflict,
    problem,
)
from ..domain.access import RoleAssignment
from ..identity.guards import AuthContext, require_action
from ..identity.permissions import Permission

router = APIRouter(prefix="/admin", tags=["admin"], responses=OPENAPI_ERROR_RESPONSES)

_require_manage_users = require_action(
    Permission.ADMIN_USERS_MANAGE, preset="admin_action"
)


def get_role_service(request: Request) -> RoleAssignmentService:
    return request.app.state.container.role_service


class RoleRes(BaseModel):
    id: str
    name: str
    display_name: str
    description: str | None
    type: str | None


class AssignRoleReq(BaseModel):
    role_id: str
    expires_at: datetime | None = None


class AssignmentRes(BaseModel):
    id: str
    user_id: str
    role_id: str
    assigned_at: datetime
    assigned_by: str | None
    expires_at: datetime | None


def _to_assignment_res(a: RoleAssignment) -> AssignmentRes:
    return AssignmentRes(
        id=a.id,
        user_id=a.user_id,
        role_id=a.role_id,
        assigned_at=a.assigned_at,
        assigned_by=a.assigned_by,
        expires_at=a.expires_at,
    )


def _raise_for_error(error: RoleAssignmentError) -> None:
    if error.code == RoleAssignmentErrorCode.CONFLICT:
        raise conflict(error.message)
    raise problem(404, error.message)


@router.get("/roles", response_model=list[RoleRes])
async def list_roles(
    _ctx: AuthContext = Depends(_require_manage_users),
    service: RoleAssignmentService = Depends(get_role_service),
):
    roles = await service.list_roles()
    return [
        RoleRes(
            id=r.id,
            name=r.name,
            display_name=r.display_name,
            description=r.description,
            type=r.type,
        )
        for r in roles
    ]


@router.post(
    "/users/{user_id}/roles",
    response_model=AssignmentRes,
    status_code=201,
    summary="Asignar rol a usuario",
)
async def assign_role(
    user_id: str,
    req: AssignRoleReq,
    ctx: AuthContext = Depends(_require_manage_users),
    service: RoleAssignmentService = Depends(get_role_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    result = await service.assign_role(
        user_id=user_id,
        role_id=req.role_id,
        actor_id=ctx.user.id,
        audit=audit,
        expires_at=req.expires_at,
    )
    if result.error:
        _raise_for_error(result.error)
    return _to_assignment_res(result.assignment)


@router.delete("/users/{user_id}/roles/{role_id}", summary="Quitar rol a usuario")
async def remove_role(
    user_id: str,
    role_id: str,
    ctx: AuthContext = Depends(_require_manage_users),
    service: RoleAssignmentService = Depends(get_role_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    result = await service.remove_role(
        user_id=user_id, role_id=role_id, actor_id=ctx.user.id, audit=audit
    )
    if result.error:
        _raise_for_error(result.error)
    return {"ok": True}
