"""
===============================================================================
TARJETA CRC — domain/access.py
===============================================================================

Módulo:
    Modelos de control de acceso (Dominio)

Responsabilidades:
    - Definir Role, PermissionRecord y RoleAssignment.
    - Encapsular la regla de vigencia de una asignación (expires_at).

Colaboradores:
    - domain.repositories.AccessRepository
    - identity.resolver: calcula el Effective Permission Set
    - application.role_assignment: alta/baja de asignaciones
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Role:
    id: str
    name: str
    display_name: str
    description: str | None = None
    type: str | None = None


@dataclass(frozen=True, slots=True)
class PermissionRecord:
    id: str
    name: str
    resource: str
    action: str | None = None
    scope: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class RoleAssignment:
    id: str
    user_id: str
    role_id: str
    assigned_at: datetime
    assigned_by: str | None = None
    expires_at: datetime | None = None

    def is_active_at(self, now: datetime) -> bool:
        """Una asignación vencida no otorga permisos."""
        return self.expires_at is None or self.expires_at > now
