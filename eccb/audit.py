"""
===============================================================================
TARJETA CRC — eccb/audit.py (Emisión de auditoría)
===============================================================================

Responsabilidades:
  - Registrar quién hizo qué (acción, entidad, valores antes/después) luego de
    una mutación exitosa.
  - Leer la sesión de forma independiente del caller y capturar IP + user agent.
  - Serializar old/new values a strings JSON.
  - "Best-effort": corre como tarea no crítica; si falla la persistencia se
    loguea y se cuenta, nunca llega al caller.

Colaboradores:
  - identity.session.SessionAccessor
  - domain.repositories.AuditLogRepository
  - crosscutting.tasks.NonCriticalTaskRunner
  - crosscutting.rate_limit.resolve_client_ip
  - crosscutting.metrics.record_audit_entry

Decisiones de seguridad:
  - No se guarda el email del actor (solo id + nombre visible).
  - Lo no serializable se stringifica (json default=str).
===============================================================================
"""

from __future__ import annotations

import json
from typing import Any

from starlette.requests import Request

from .crosscutting.exceptions import AuditWriteError
from .crosscutting.metrics import record_audit_entry
from .crosscutting.rate_limit import resolve_client_ip
from .crosscutting.tasks import NonCriticalTaskRunner
from .domain.audit import NewAuditEntry
from .domain.repositories import AuditLogRepository
from .identity.session import SessionAccessor, SessionUser

_USER_AGENT_MAX = 512


def _serialize(values: Any) -> str | None:
    if values is None:
        return None
    return json.dumps(values, default=str)


class AuditLogger:
    """
    Logger de auditoría ligado a un request.

    Uso típico (después de la mutación):
        audit.record("role.assign", "User", entity_id=user_id,
                     new_values={"role_id": role_id})
    """

    def __init__(
        self,
        request: Request,
        sessions: SessionAccessor,
        repository: AuditLogRepository,
        tasks: NonCriticalTaskRunner,
    ) -> None:
        self._request = request
        self._sessions = sessions
        self._repository = repository
        self._tasks = tasks

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: str | None = None,
        old_values: Any = None,
        new_values: Any = None,
        *,
        actor: SessionUser | None = None,
    ) -> None:
        """
        Programa la escritura y retorna de inmediato.

        `actor` reemplaza la sesión del request (ej: login, donde la cookie
        todavía no viajó).
        """
        self._tasks.submit(
            self._write(action, entity_type, entity_id, old_values, new_values, actor),
            name=f"audit:{action}",
        )

    async def _write(
        self,
        action: str,
        entity_type: str,
        entity_id: str | None,
        old_values: Any,
        new_values: Any,
        actor: SessionUser | None = None,
    ) -> None:
        try:
            if actor is None:
                session = await self._sessions.get_session(self._request)
                actor = session.user if session else None
            ip_address = await resolve_client_ip(self._request)
            user_agent = self._request.headers.get("user-agent")

            await self._repository.create_entry(
                NewAuditEntry(
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    user_id=actor.id if actor else None,
                    user_name=actor.name if actor else None,
                    ip_address=ip_address,
                    user_agent=user_agent[:_USER_AGENT_MAX] if user_agent else None,
                    old_values=_serialize(old_values),
                    new_values=_serialize(new_values),
                )
            )
        except Exception as exc:
            record_audit_entry("failed")
            raise AuditWriteError(
                f"No se pudo registrar auditoría ({action})", original_error=exc
            ) from exc

        record_audit_entry("written")


def get_audit_logger(request: Request) -> AuditLogger:
    """Dependency FastAPI: AuditLogger para el request actual."""
    container = request.app.state.container
    return AuditLogger(
        request, container.sessions, container.audit_repository, container.tasks
    )
