"""
===============================================================================
USE CASE: Role Assignment (assign / remove / list)
===============================================================================

Name:
    Role Assignment Use Cases

Business Goal:
    Permitir a un administrador asignar y quitar roles a usuarios, manteniendo
    coherente la cache de permisos y dejando rastro en auditoría.

-------------------------------------------------------------------------------
CRC CARD (Class-Responsibility-Collaborator)
-------------------------------------------------------------------------------
Class:
    RoleAssignmentService

Responsibilities:
    - Validar existencia de usuario y rol.
    - Rechazar asignaciones duplicadas (CONFLICT).
    - Persistir la asignación con assigned_by = actor.
    - Invalidar la cache de permisos del usuario afectado.
    - Auditar role.assign / role.remove (entidad "User").
    - Devolver resultados tipados (RoleAssignmentResult).

Collaborators:
    - AccessRepository / UserRepository
    - PermissionResolver.invalidate
    - AuditLogger.record

-------------------------------------------------------------------------------
BUSINESS RULES
-------------------------------------------------------------------------------
R1) Usuario y rol deben existir (NOT_FOUND).
R2) Un usuario no puede tener dos veces el mismo rol (CONFLICT).
R3) Quitar un rol no asignado => NOT_FOUND.
R4) Toda mutación invalida la cache del usuario antes de auditar.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List

from ..audit import AuditLogger
from ..crosscutting.logger import logger
from ..domain.access import Role, RoleAssignment
from ..domain.repositories import AccessRepository, UserRepository
from ..identity.resolver import PermissionResolver

AUDIT_ENTITY_USER = "User"
AUDIT_ACTION_ASSIGN = "role.assign"
AUDIT_ACTION_REMOVE = "role.remove"


class RoleAssignmentErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"


@dataclass(frozen=True)
class RoleAssignmentError:
    code: RoleAssignmentErrorCode
    message: str
    resource: str | None = None


@dataclass
class RoleAssignmentResult:
    """
    Contrato:
      - éxito: error is None (assignment presente en assign)
      - fallo: error presente
    """

    assignment: RoleAssignment | None = None
    error: RoleAssignmentError | None = None


class RoleAssignmentService:
    def __init__(
        self,
        access_repository: AccessRepository,
        user_repository: UserRepository,
        resolver: PermissionResolver,
    ) -> None:
        self._access = access_repository
        self._users = user_repository
        self._resolver = resolver

    async def list_roles(self) -> List[Role]:
        return await self._access.list_roles()

    async def assign_role(
        self,
        *,
        user_id: str,
        role_id: str,
        actor_id: str,
        audit: AuditLogger,
        expires_at: datetime | None = None,
    ) -> RoleAssignmentResult:
        user = await self._users.get_user_by_id(user_id)
        if user is None:
            return self._not_found("Usuario", user_id)

        role = await self._access.get_role(role_id)
        if role is None:
            return self._not_found("Rol", role_id)

        if await self._access.get_assignment(user_id, role_id) is not None:
            return RoleAssignmentResult(
                error=RoleAssignmentError(
                    code=RoleAssignmentErrorCode.CONFLICT,
                    message=f"El usuario ya tiene el rol {role.name}",
                )
            )

        assignment = await self._access.create_assignment(
            user_id=user_id,
            role_id=role_id,
            assigned_by=actor_id,
            expires_at=expires_at,
        )
        await self._resolver.invalidate(user_id)

        logger.info(
            "Rol asignado",
            extra={"user_id": user_id, "role": role.name, "assigned_by": actor_id},
        )
        audit.record(
            AUDIT_ACTION_ASSIGN,
            AUDIT_ENTITY_USER,
            entity_id=user_id,
            new_values={
                "role_id": role_id,
                "role_name": role.name,
                "expires_at": expires_at,
            },
        )
        return RoleAssignmentResult(assignment=assignment)

    async def remove_role(
        self,
        *,
        user_id: str,
        role_id: str,
        actor_id: str,
        audit: AuditLogger,
    ) -> RoleAssignmentResult:
        existing = await self._access.get_assignment(user_id, role_id)
        if existing is None:
            return self._not_found("Asignación", f"{user_id}/{role_id}")

        if not await self._access.delete_assignment(user_id, role_id):
            # R: otra request la borró entre el get y el delete.
            return self._not_found("Asignación", f"{user_id}/{role_id}")

        await self._resolver.invalidate(user_id)

        role = await self._access.get_role(role_id)
        logger.info(
            "Rol removido",
            extra={"user_id": user_id, "role_id": role_id, "removed_by": actor_id},
        )
        audit.record(
            AUDIT_ACTION_REMOVE,
            AUDIT_ENTITY_USER,
            entity_id=user_id,
            old_values={
                "role_id": role_id,
                "role_name": role.name if role else None,
            },
        )
        return RoleAssignmentResult(assignment=existing)

    @staticmethod
    def _not_found(resource: str, identifier: str) -> RoleAssignmentResult:
        return RoleAssignmentResult(
            error=RoleAssignmentError(
                code=RoleAssignmentErrorCode.NOT_FOUND,
                message=f"{resource} '{identifier}' no encontrado",
                resource=resource,
            )
        )
