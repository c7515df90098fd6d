"""
===============================================================================
TARJETA CRC — identity/permissions.py
===============================================================================

Módulo:
    Catálogo de permisos (lenguaje ubicuo para autorización)

Responsabilidades:
    - Definir el registro tipado de tokens de permiso (Permission).
    - Agrupar permisos por recurso (música, miembros, eventos, ...).
    - Validar tokens y filtrarlos por recurso.

Colaboradores:
    - identity.roles: permisos por defecto de cada rol (seed).
    - identity.guards: tokens requeridos por cada entry point.
    - application.access_catalog: upsert idempotente en la tabla permissions.

Notas de diseño:
    - Conviven dos convenciones de separador ("member.create" y
      "attendance:mark:all"). Los tokens son literales: nunca se normalizan y
      el match es exacto ("p4" no matchea "p4:all").
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Permission(str, Enum):
    """Tokens de permiso disponibles en el sistema."""

    # Biblioteca musical
    MUSIC_VIEW_ALL = "music.view.all"
    MUSIC_VIEW_ASSIGNED = "music.view.assigned"
    MUSIC_CREATE = "music.create"
    MUSIC_EDIT = "music.edit"
    MUSIC_DELETE = "music.delete"
    MUSIC_ASSIGN = "music.assign"
    MUSIC_DOWNLOAD_ALL = "music.download.all"
    MUSIC_DOWNLOAD_ASSIGNED = "music.download.assigned"
    MUSIC_UPLOAD = "music.upload"
    MUSIC_SMART_UPLOAD = "music.smart_upload"
    MUSIC_SMART_UPLOAD_APPROVE = "music.smart_upload.approve"

    # Miembros
    MEMBER_VIEW_ALL = "member.view.all"
    MEMBER_VIEW_SECTION = "member.view.section"
    MEMBER_VIEW_OWN = "member.view.own"
    MEMBER_CREATE = "member.create"
    MEMBER_EDIT_ALL = "member.edit.all"
    MEMBER_EDIT_OWN = "member.edit.own"
    MEMBER_DELETE = "member.delete"
    MEMBER_PROFILE_VIEW = "member.profile.view"

    # Eventos
    EVENT_VIEW_ALL = "event.view.all"
    EVENT_VIEW_PUBLIC = "event.view.public"
    EVENT_CREATE = "event.create"
    EVENT_EDIT = "event.edit"
    EVENT_DELETE = "event.delete"
    EVENT_PUBLISH = "event.publish"

    # Asistencia
    ATTENDANCE_VIEW_ALL = "attendance.view.all"
    ATTENDANCE_VIEW_SECTION = "attendance.view.section"
    ATTENDANCE_VIEW_OWN = "attendance.view.own"
    ATTENDANCE_MARK_ALL = "attendance.mark.all"
    ATTENDANCE_MARK_SECTION = "attendance.mark.section"
    ATTENDANCE_MARK_OWN = "attendance.mark.own"

    # CMS
    CMS_VIEW_ALL = "cms.view.all"
    CMS_VIEW_PUBLIC = "cms.view.public"
    CMS_EDIT = "cms.edit"
    CMS_PUBLISH = "cms.publish"
    CMS_DELETE = "cms.delete"

    # Comunicaciones
    ANNOUNCEMENT_VIEW_ALL = "announcement.view.all"
    ANNOUNCEMENT_CREATE = "announcement.create"
    MESSAGE_SEND_ALL = "message.send.all"
    MESSAGE_SEND_SECTION = "message.send.section"

    # Administración
    REPORT_VIEW = "report.view"
    REPORT_EXPORT = "report.export"
    SYSTEM_CONFIG = "system.config"
    AUDIT_VIEW = "audit.view"
    ADMIN_AUDIT_VIEW = "admin.audit.view"
    ADMIN_USERS_MANAGE = "admin.users.manage"

    # Tokens con ":" usados por las páginas/acciones administrativas
    MUSIC_READ = "music:read"
    MUSIC_CREATE_ACTION = "music:create"
    MUSIC_SMART_UPLOAD_READ = "music:smart_upload:read"
    MEMBERS_READ = "members:read"
    EVENTS_READ = "events:read"
    CONTENT_READ = "content:read"
    CONTENT_CREATE = "content:create"
    CONTENT_UPDATE = "content:update"
    CONTENT_DELETE = "content:delete"
    ATTENDANCE_READ = "attendance:read"
    ATTENDANCE_MARK_ALL_ACTION = "attendance:mark:all"
    MESSAGE_SEND_ALL_ACTION = "message:send:all"
    COMMUNICATIONS_READ = "communications:read"
    COMMUNICATIONS_WRITE = "communications:write"
    SYSTEM_SETTINGS = "system:settings"
    SETTINGS_READ = "settings:read"
    REPORTS_READ = "reports:read"


# ---------------------------------------------------------------------------
# Grupos
# ---------------------------------------------------------------------------

MUSIC_PERMISSIONS: tuple[Permission, ...] = (
    Permission.MUSIC_VIEW_ALL,
    Permission.MUSIC_VIEW_ASSIGNED,
    Permission.MUSIC_CREATE,
    Permission.MUSIC_EDIT,
    Permission.MUSIC_DELETE,
    Permission.MUSIC_ASSIGN,
    Permission.MUSIC_DOWNLOAD_ALL,
    Permission.MUSIC_DOWNLOAD_ASSIGNED,
    Permission.MUSIC_UPLOAD,
    Permission.MUSIC_SMART_UPLOAD,
    Permission.MUSIC_SMART_UPLOAD_APPROVE,
)

MEMBER_PERMISSIONS: tuple[Permission, ...] = (
    Permission.MEMBER_VIEW_ALL,
    Permission.MEMBER_VIEW_SECTION,
    Permission.MEMBER_VIEW_OWN,
    Permission.MEMBER_CREATE,
    Permission.MEMBER_EDIT_ALL,
    Permission.MEMBER_EDIT_OWN,
    Permission.MEMBER_DELETE,
    Permission.MEMBER_PROFILE_VIEW,
)

EVENT_PERMISSIONS: tuple[Permission, ...] = (
    Permission.EVENT_VIEW_ALL,
    Permission.EVENT_VIEW_PUBLIC,
    Permission.EVENT_CREATE,
    Permission.EVENT_EDIT,
    Permission.EVENT_DELETE,
    Permission.EVENT_PUBLISH,
)

ATTENDANCE_PERMISSIONS: tuple[Permission, ...] = (
    Permission.ATTENDANCE_VIEW_ALL,
    Permission.ATTENDANCE_VIEW_SECTION,
    Permission.ATTENDANCE_VIEW_OWN,
    Permission.ATTENDANCE_MARK_ALL,
    Permission.ATTENDANCE_MARK_SECTION,
    Permission.ATTENDANCE_MARK_OWN,
)

CMS_PERMISSIONS: tuple[Permission, ...] = (
    Permission.CMS_VIEW_ALL,
    Permission.CMS_VIEW_PUBLIC,
    Permission.CMS_EDIT,
    Permission.CMS_PUBLISH,
    Permission.CMS_DELETE,
)

COMMUNICATION_PERMISSIONS: tuple[Permission, ...] = (
    Permission.ANNOUNCEMENT_VIEW_ALL,
    Permission.ANNOUNCEMENT_CREATE,
    Permission.MESSAGE_SEND_ALL,
    Permission.MESSAGE_SEND_SECTION,
)

ADMIN_PERMISSIONS: tuple[Permission, ...] = (
    Permission.REPORT_VIEW,
    Permission.REPORT_EXPORT,
    Permission.SYSTEM_CONFIG,
    Permission.AUDIT_VIEW,
    Permission.ADMIN_AUDIT_VIEW,
    Permission.ADMIN_USERS_MANAGE,
)

ACTION_PERMISSIONS: tuple[Permission, ...] = tuple(
    p for p in Permission if ":" in p.value
)

ALL_PERMISSIONS: tuple[Permission, ...] = tuple(Permission)

_ALL_VALUES = frozenset(p.value for p in Permission)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_valid_permission(value: str) -> bool:
    """True si el string es un token registrado (match exacto)."""
    return value in _ALL_VALUES


def get_permissions_by_resource(resource: str) -> list[Permission]:
    """Permisos cuyo token empieza con "<resource>." o "<resource>:"."""
    prefixes = (f"{resource}.", f"{resource}:")
    return [p for p in ALL_PERMISSIONS if p.value.startswith(prefixes)]


def split_token(token: str) -> tuple[str, str | None, str | None]:
    """
    Descompone un token en (resource, action, scope) para persistirlo.

    Acepta ambos separadores; si hay más de tres partes, el resto va al scope.
    """
    separator = ":" if ":" in token else "."
    parts = token.split(separator, 2)
    resource = parts[0]
    action = parts[1] if len(parts) > 1 else None
    scope = parts[2] if len(parts) > 2 else None
    return resource, action, scope


def as_values(permissions: Iterable[Permission | str]) -> frozenset[str]:
    return frozenset(p.value if isinstance(p, Permission) else p for p in permissions)
