"""
===============================================================================
TARJETA CRC — eccb/api/exception_handlers.py
===============================================================================

Responsabilidades:
  - Mapear condiciones de las guards a respuestas HTTP:
      RedirectRequired -> 307 + Location
      UnauthorizedError -> 401, ForbiddenError -> 403
      RateLimitExceededError -> 429 (Retry-After + X-RateLimit-*)
  - DatabaseError -> 503 (falla cerrada); otros EccbError -> 500.
  - Excepciones no tipadas: stacktrace al log, mensaje genérico en producción.

Colaboradores:
  - crosscutting.error_responses (problem+json)
  - crosscutting.exceptions
  - crosscutting.rate_limit.rate_limited_exception
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
    forbidden,
    internal_error,
    problem,
    unauthorized,
    validation_error,
)
from ..crosscutting.exceptions import (
    DatabaseError,
    EccbError,
    ForbiddenError,
    RateLimitExceededError,
    RedirectRequired,
    UnauthorizedError,
)
from ..crosscutting.logger import logger
from ..crosscutting.rate_limit import rate_limited_exception


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


async def redirect_handler(request: Request, exc: RedirectRequired) -> RedirectResponse:
    return RedirectResponse(url=exc.location, status_code=307)


async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    return await app_exception_handler(request, unauthorized(exc.message))


async def forbidden_handler(request: Request, exc: ForbiddenError) -> JSONResponse:
    return await app_exception_handler(
        request, forbidden(exc.message, required_permission=exc.required)
    )


async def rate_limit_handler(
    request: Request, exc: RateLimitExceededError
) -> JSONResponse:
    return await app_exception_handler(request, rate_limited_exception(exc))


async def service_error_handler(request: Request, exc: EccbError) -> JSONResponse:
    """DatabaseError -> 503 DATABASE_ERROR; cualquier otro EccbError -> 500."""
    if isinstance(exc, DatabaseError):
        status_code, code = 503, ErrorCode.DATABASE_ERROR
    else:
        status_code, code = 500, ErrorCode.INTERNAL_ERROR

    logger.error(
        "Error de servicio",
        extra={
            "code": code.value,
            "error_id": exc.error_id,
            "error_message": exc.message,
            "request_id": _request_id_from(request),
        },
    )
    return await app_exception_handler(
        request,
        problem(
            status_code, exc.message, code=code, errors=[{"error_id": exc.error_id}]
        ),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ())),
            "msg": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return await app_exception_handler(
        request, validation_error("Request inválido", errors)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler para excepciones no tipadas.

    - Log completo (stacktrace).
    - Respuesta genérica en producción.
    """
    request_id = _request_id_from(request)

    logger.error(
        "Excepción no controlada",
        exc_info=True,
        extra={"request_id": request_id, "error": str(exc)},
    )

    try:
        production = get_settings().is_production()
    except Exception:
        production = True
    detail = "Error interno." if production else str(exc)

    return await app_exception_handler(request, internal_error(detail))


_HANDLERS = (
    (RedirectRequired, redirect_handler),
    (UnauthorizedError, unauthorized_handler),
    (ForbiddenError, forbidden_handler),
    (RateLimitExceededError, rate_limit_handler),
    (EccbError, service_error_handler),
    (AppHTTPException, app_exception_handler),
    (RequestValidationError, request_validation_handler),
    (Exception, unhandled_exception_handler),
)


def register_exception_handlers(app) -> None:
    # Starlette resuelve por MRO: las subclases de EccbError con handler
    # propio no caen en service_error_handler.
    for exc_class, handler in _HANDLERS:
        app.add_exception_handler(exc_class, handler)


__all__ = ["register_exception_handlers"]
