"""
===============================================================================
TARJETA CRC — domain/audit.py
===============================================================================

Módulo:
    Modelos de Auditoría (Dominio)

Responsabilidades:
    - Definir la entrada de auditoría (AuditEntry) y su borrador (NewAuditEntry).
    - Definir filtros y agregados de reporting (AuditLogFilters, AuditLogStats).
    - Mantener el contrato de auditoría independiente de infraestructura.

Colaboradores:
    - domain.repositories.AuditLogRepository: persiste y consulta entradas.
    - eccb/audit.py: emite entradas (fire-and-forget).
    - application.audit_reports: listados, estadísticas y exportación.

Notas:
    - Auditoría es append-only (no se edita ni se borra).
    - old_values / new_values se guardan como strings JSON ya serializados.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class NewAuditEntry:
    """Entrada a persistir (id y timestamp los asigna el repositorio)."""

    action: str
    entity_type: str
    entity_id: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    old_values: str | None = None
    new_values: str | None = None


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """Entrada de auditoría persistida (inmutable)."""

    id: str
    action: str
    entity_type: str
    timestamp: datetime
    entity_id: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    old_values: str | None = None
    new_values: str | None = None


@dataclass(frozen=True, slots=True)
class AuditLogFilters:
    """
    Filtros de listado.

    - user_id / entity_type / entity_id: match exacto
    - user_name / action: contiene (case-insensitive)
    - date_from: desde (inclusive); date_to: hasta el FIN de ese día
    """

    user_id: str | None = None
    user_name: str | None = None
    action: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True, slots=True)
class CountByKey:
    key: str
    count: int


@dataclass(frozen=True, slots=True)
class AuditLogStats:
    total_logs: int
    by_action: list[CountByKey] = field(default_factory=list)
    by_entity_type: list[CountByKey] = field(default_factory=list)
    by_user: list[CountByKey] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AuditLogPage:
    logs: list[AuditEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
