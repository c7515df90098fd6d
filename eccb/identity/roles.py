"""
===============================================================================
TARJETA CRC — identity/roles.py
===============================================================================

Módulo:
    Roles del sistema + permisos por defecto

Responsabilidades:
    - Enumerar los tipos de rol (RoleType).
    - Definir el catálogo de roles con display name / descripción.
    - Definir los permisos que el seed asigna a cada rol.
    - Exponer los conjuntos de roles usados por los predicados is_admin /
      is_staff / is_librarian.

Colaboradores:
    - identity.permissions
    - identity.resolver (predicados por rol)
    - application.access_catalog (seed idempotente)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .permissions import (
    ALL_PERMISSIONS,
    ATTENDANCE_PERMISSIONS,
    CMS_PERMISSIONS,
    COMMUNICATION_PERMISSIONS,
    EVENT_PERMISSIONS,
    MUSIC_PERMISSIONS,
    Permission,
)


class RoleType(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    DIRECTOR = "DIRECTOR"
    STAFF = "STAFF"
    SECTION_LEADER = "SECTION_LEADER"
    LIBRARIAN = "LIBRARIAN"
    MUSICIAN = "MUSICIAN"
    PUBLIC = "PUBLIC"


@dataclass(frozen=True, slots=True)
class RoleDefinition:
    name: RoleType
    display_name: str
    description: str


ROLE_DEFINITIONS: tuple[RoleDefinition, ...] = (
    RoleDefinition(RoleType.SUPER_ADMIN, "Super Administrator", "Full system access"),
    RoleDefinition(RoleType.ADMIN, "Administrator", "Band operations management"),
    RoleDefinition(
        RoleType.DIRECTOR, "Director/Staff", "Musical and operational leadership"
    ),
    RoleDefinition(RoleType.STAFF, "Staff", "Operational support"),
    RoleDefinition(
        RoleType.SECTION_LEADER,
        "Section Leader",
        "Musical leadership for a section",
    ),
    RoleDefinition(RoleType.LIBRARIAN, "Librarian", "Music library management"),
    RoleDefinition(RoleType.MUSICIAN, "Musician", "Band member"),
    RoleDefinition(RoleType.PUBLIC, "Public User", "Limited access for public users"),
)

# R: conjuntos usados por los predicados del resolver.
ADMIN_ROLES: frozenset[str] = frozenset(
    {RoleType.SUPER_ADMIN.value, RoleType.ADMIN.value}
)
STAFF_ROLES: frozenset[str] = frozenset(
    {
        RoleType.SUPER_ADMIN.value,
        RoleType.ADMIN.value,
        RoleType.DIRECTOR.value,
        RoleType.STAFF.value,
    }
)
LIBRARIAN_ROLES: frozenset[str] = frozenset(
    {RoleType.SUPER_ADMIN.value, RoleType.ADMIN.value, RoleType.LIBRARIAN.value}
)


_LIBRARIAN_PERMISSIONS: tuple[Permission, ...] = (
    Permission.MUSIC_VIEW_ALL,
    Permission.MUSIC_CREATE,
    Permission.MUSIC_EDIT,
    Permission.MUSIC_DELETE,
    Permission.MUSIC_UPLOAD,
    Permission.MUSIC_SMART_UPLOAD,
    Permission.MUSIC_SMART_UPLOAD_APPROVE,
    Permission.MUSIC_DOWNLOAD_ALL,
    Permission.MUSIC_READ,
    Permission.MUSIC_CREATE_ACTION,
    Permission.MUSIC_SMART_UPLOAD_READ,
)

_MUSICIAN_PERMISSIONS: tuple[Permission, ...] = (
    Permission.MUSIC_VIEW_ASSIGNED,
    Permission.MUSIC_DOWNLOAD_ASSIGNED,
    Permission.MEMBER_VIEW_OWN,
    Permission.MEMBER_EDIT_OWN,
    Permission.EVENT_VIEW_ALL,
    Permission.ATTENDANCE_MARK_OWN,
)

_SECTION_LEADER_PERMISSIONS: tuple[Permission, ...] = (
    *_MUSICIAN_PERMISSIONS,
    Permission.MEMBER_VIEW_SECTION,
    Permission.ATTENDANCE_VIEW_SECTION,
    Permission.ATTENDANCE_MARK_SECTION,
    Permission.MESSAGE_SEND_SECTION,
)

_DIRECTOR_PERMISSIONS: tuple[Permission, ...] = (
    *MUSIC_PERMISSIONS,
    *EVENT_PERMISSIONS,
    *ATTENDANCE_PERMISSIONS,
    *COMMUNICATION_PERMISSIONS,
    Permission.MEMBER_VIEW_ALL,
    Permission.MEMBER_PROFILE_VIEW,
    Permission.REPORT_VIEW,
    Permission.MUSIC_READ,
    Permission.MEMBERS_READ,
    Permission.EVENTS_READ,
    Permission.ATTENDANCE_READ,
    Permission.ATTENDANCE_MARK_ALL_ACTION,
    Permission.MESSAGE_SEND_ALL_ACTION,
    Permission.COMMUNICATIONS_READ,
    Permission.COMMUNICATIONS_WRITE,
    Permission.REPORTS_READ,
)

_STAFF_PERMISSIONS: tuple[Permission, ...] = (
    *EVENT_PERMISSIONS,
    *CMS_PERMISSIONS,
    Permission.MEMBER_VIEW_ALL,
    Permission.ANNOUNCEMENT_VIEW_ALL,
    Permission.ANNOUNCEMENT_CREATE,
    Permission.EVENTS_READ,
    Permission.CONTENT_READ,
    Permission.CONTENT_CREATE,
    Permission.CONTENT_UPDATE,
    Permission.ATTENDANCE_READ,
)

_ADMIN_PERMISSIONS: tuple[Permission, ...] = tuple(
    p for p in ALL_PERMISSIONS if p is not Permission.SYSTEM_SETTINGS
)

_PUBLIC_PERMISSIONS: tuple[Permission, ...] = (
    Permission.EVENT_VIEW_PUBLIC,
    Permission.CMS_VIEW_PUBLIC,
)


DEFAULT_ROLE_PERMISSIONS: Mapping[RoleType, tuple[Permission, ...]] = {
    RoleType.SUPER_ADMIN: ALL_PERMISSIONS,
    RoleType.ADMIN: _ADMIN_PERMISSIONS,
    RoleType.DIRECTOR: _DIRECTOR_PERMISSIONS,
    RoleType.STAFF: _STAFF_PERMISSIONS,
    RoleType.SECTION_LEADER: _SECTION_LEADER_PERMISSIONS,
    RoleType.LIBRARIAN: _LIBRARIAN_PERMISSIONS,
    RoleType.MUSICIAN: _MUSICIAN_PERMISSIONS,
    RoleType.PUBLIC: _PUBLIC_PERMISSIONS,
}
