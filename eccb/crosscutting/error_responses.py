# eccb/crosscutting/error_responses.py
"""
===============================================================================
MÓDULO: Problem Details (RFC 7807) para la API de acceso
===============================================================================

Todo error HTTP sale como application/problem+json con un `code` estable:
  - 401 sin sesión, 403 sin permiso (errors[] lleva el permiso requerido)
  - 429 con Retry-After + X-RateLimit-*
  - 503 cuando falla el storage de permisos/roles (falla cerrada)

CRC (Component Card)
-------------------------------------------------------------------------------
Componentes:
  - ErrorCode / ErrorDetail
  - AppHTTPException + problem() y factories por status
  - app_exception_handler

Colaboradores:
  - api/exception_handlers.py (condiciones de guards y errores tipados)
  - crosscutting/rate_limit.py (429 desde el middleware)
  - request.state.request_id (RequestContextMiddleware)
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


_DEFAULT_CODE_BY_STATUS: Mapping[int, ErrorCode] = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
    500: ErrorCode.INTERNAL_ERROR,
    503: ErrorCode.DATABASE_ERROR,
}


class ErrorDetail(BaseModel):
    """Payload problem+json (code y errors[] son extensiones propias)."""

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    code: ErrorCode
    instance: str | None = None
    errors: list[dict[str, Any]] | None = None


class AppHTTPException(HTTPException):
    """HTTPException con ErrorCode estable y errors[] opcional."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        errors: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.errors = errors


def problem(
    status_code: int,
    detail: str,
    *,
    code: ErrorCode | None = None,
    errors: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
) -> AppHTTPException:
    """Construye el error; el code sale del status salvo que se indique."""
    return AppHTTPException(
        status_code,
        code or _DEFAULT_CODE_BY_STATUS.get(status_code, ErrorCode.INTERNAL_ERROR),
        detail,
        errors,
        headers,
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def unauthorized(detail: str = "Autenticación requerida") -> AppHTTPException:
    return problem(401, detail)


def forbidden(
    detail: str = "Acceso denegado", *, required_permission: str | None = None
) -> AppHTTPException:
    errors = [{"required_permission": required_permission}] if required_permission else None
    return problem(403, detail, errors=errors)


def not_found(resource: str, identifier: str) -> AppHTTPException:
    return problem(404, f"{resource} '{identifier}' no encontrado")


def conflict(detail: str) -> AppHTTPException:
    return problem(409, detail)


def validation_error(
    detail: str, errors: list[dict[str, Any]] | None = None
) -> AppHTTPException:
    return problem(422, detail, errors=errors)


def rate_limited(
    retry_after: int = 60, headers: dict[str, str] | None = None
) -> AppHTTPException:
    return problem(
        429,
        f"Demasiadas solicitudes. Reintentá en {retry_after}s",
        headers={**(headers or {}), "Retry-After": str(retry_after)},
    )


def internal_error(detail: str = "Ocurrió un error inesperado") -> AppHTTPException:
    return problem(500, detail)


# ---------------------------------------------------------------------------
# Handler FastAPI
# ---------------------------------------------------------------------------
async def app_exception_handler(
    request: Request, exc: AppHTTPException
) -> JSONResponse:
    """AppHTTPException -> problem+json (agrega request_id a errors[])."""
    errors = list(exc.errors or [])
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        errors.append({"request_id": request_id})

    body = ErrorDetail(
        type=f"about:blank/{exc.code.value.lower()}",
        title=exc.code.value.replace("_", " ").title(),
        status=exc.status_code,
        detail=str(exc.detail),
        code=exc.code,
        instance=str(request.url),
        errors=errors or None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=exc.headers,
        media_type=PROBLEM_JSON_MEDIA_TYPE,
    )


# OpenAPI: mismas respuestas documentadas en todos los routers.
OPENAPI_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status: {
        "description": f"{code.value.replace('_', ' ').title()} (RFC 7807)",
        "model": ErrorDetail,
        "content": {
            PROBLEM_JSON_MEDIA_TYPE: {
                "schema": {"$ref": "#/components/schemas/ErrorDetail"}
            }
        },
    }
    for status, code in _DEFAULT_CODE_BY_STATUS.items()
    if status < 500
}
