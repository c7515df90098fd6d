# eccb/crosscutting/exceptions.py
"""
===============================================================================
MÓDULO: Errores tipados de la capa de acceso
===============================================================================

Cada error lleva un error_code estable, un error_id (uuid4) que aparece en
el log y en la respuesta, y un message apto para el usuario.

Propagación
-----------
- Sesión, permisos y roles fallan cerrado: UnauthorizedError, ForbiddenError
  y DatabaseError llegan al handler HTTP.
- Contadores, auditoría y cache de permisos son consultivos: CounterStoreError
  y AuditWriteError se loguean donde ocurren y el caller sigue.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  EccbError y su jerarquía (infra, condiciones de guards)

Colaboradores:
  - api/exception_handlers.py (status + problem+json)
  - crosscutting/logger.py
===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from ..application.rate_limiting import RateLimitResult


class EccbError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      EccbError

    Responsabilidades:
      - Base para errores internos del sistema
      - Proveer error_code + error_id + message

    Colaboradores:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "ECCB_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)


class DatabaseError(EccbError):
    """Errores de DB (conexión, query, timeout, pool). Lookups de permisos incluidos."""

    error_code: str = "DATABASE_ERROR"


class CounterStoreError(EccbError):
    """El store de contadores (Redis) no respondió o devolvió error."""

    error_code: str = "COUNTER_STORE_ERROR"


class AuditWriteError(EccbError):
    """Falló la escritura de una entrada de auditoría (nunca llega al caller)."""

    error_code: str = "AUDIT_WRITE_ERROR"


# ---------------------------------------------------------------------------
# Condiciones de acceso (guards)
# ---------------------------------------------------------------------------
class AccessError(EccbError):
    """Base de las condiciones que levanta la capa de guards."""

    error_code: str = "ACCESS_ERROR"


class UnauthorizedError(AccessError):
    """No hay sesión válida."""

    error_code: str = "UNAUTHORIZED"

    def __init__(self, message: str = "Autenticación requerida", **kwargs):
        super().__init__(message, **kwargs)


class ForbiddenError(AccessError):
    """Sesión válida pero sin el permiso/rol requerido."""

    error_code: str = "FORBIDDEN"

    def __init__(
        self,
        message: str = "Acceso denegado",
        *,
        required: str | None = None,
        **kwargs,
    ):
        self.required = required
        super().__init__(message, **kwargs)


class RedirectRequired(AccessError):
    """Guard de página: el caller debe ir a `location` (login o forbidden)."""

    error_code: str = "REDIRECT"

    def __init__(self, location: str, **kwargs):
        self.location = location
        super().__init__(f"Redirect a {location}", **kwargs)


class RateLimitExceededError(AccessError):
    """Demasiadas solicitudes para la key; transporta el resultado y el retry hint."""

    error_code: str = "RATE_LIMITED"

    def __init__(
        self,
        result: "RateLimitResult",
        retry_after: int,
        message: str | None = None,
        **kwargs,
    ):
        self.result = result
        self.retry_after = retry_after
        super().__init__(
            message or f"Demasiadas solicitudes. Reintentá en {retry_after}s",
            **kwargs,
        )
