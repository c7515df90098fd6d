"""
===============================================================================
TARJETA CRC — eccb/context.py (Contexto por request)
===============================================================================

Responsabilidades:
  - Guardar request_id / method / path / user_id del request en curso
    (ContextVars, seguros entre tareas asyncio).
  - Exponerlos como dict para los logs de decisiones de acceso.

Colaboradores:
  - eccb.crosscutting.middleware: abre y cierra el contexto por request.
  - eccb.identity.guards: agrega user_id al resolver la sesión.
  - eccb.crosscutting.logger (RequestContextFilter): lo lee en cada LogRecord.

Restricciones:
  - Valores str; "" significa ausente y no se emite.
  - Las tareas de auditoría copian el contexto al crearse, así que sus logs
    conservan el request_id del request que las originó.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar

_FIELDS: dict[str, ContextVar[str]] = {
    name: ContextVar(f"eccb_{name}", default="")
    for name in ("request_id", "method", "path", "user_id")
}


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    _FIELDS["request_id"].set(request_id or "")
    _FIELDS["method"].set(method or "")
    _FIELDS["path"].set(path or "")


def set_user_context(user_id: str) -> None:
    _FIELDS["user_id"].set(user_id or "")


def get_context_dict() -> dict[str, str]:
    """Contexto actual sin las claves vacías."""
    return {name: value for name, var in _FIELDS.items() if (value := var.get())}


def clear_context() -> None:
    """Resetea todo; el worker reutiliza el mismo contexto entre requests."""
    for var in _FIELDS.values():
        var.set("")
