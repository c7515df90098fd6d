# eccb/crosscutting/rate_limit.py
"""
===============================================================================
MÓDULO: Rate limiting HTTP (ventana fija sobre store de contadores)
===============================================================================

Objetivo
--------
Proteger la API completa por IP (preset "api") y exponer helpers HTTP para
los guards:
- Resolución de IP de cliente (X-Forwarded-For / X-Real-IP / socket)
- Headers X-RateLimit-* / Retry-After
- Respuesta RFC7807 429

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componentes:
  - resolve_client_ip
  - rate_limit_headers / rate_limited_exception
  - RateLimitMiddleware

Responsabilidades:
  - Decidir allow/deny por IP antes del routing
  - Emitir 429 con Retry-After + X-RateLimit-*
  - Anotar headers X-RateLimit-* en respuestas permitidas

Colaboradores:
  - application.rate_limiting.RateLimiter (vía container)
  - crosscutting.error_responses
  - crosscutting.logger
===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request

from .error_responses import AppHTTPException, app_exception_handler, rate_limited
from .exceptions import RateLimitExceededError
from .logger import logger

if TYPE_CHECKING:
    from ..application.rate_limiting import RateLimitResult

DEFAULT_CLIENT_IP = "127.0.0.1"


async def resolve_client_ip(request: Request) -> str:
    """
    IP del cliente.

    Orden: primer valor de X-Forwarded-For, X-Real-IP, socket, "127.0.0.1".
    Es async para poder resolverse en paralelo con la sesión.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
        if ip:
            return ip

    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    client = request.client
    if client and client.host:
        return client.host

    return DEFAULT_CLIENT_IP


def rate_limit_headers(result: "RateLimitResult") -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }


def rate_limited_exception(exc: RateLimitExceededError) -> AppHTTPException:
    """Traduce RateLimitExceededError a 429 RFC7807 con todos los headers."""
    return rate_limited(exc.retry_after, headers=rate_limit_headers(exc.result))


class RateLimitMiddleware:
    """
    ASGI middleware de rate limit por IP.

    - Usa el RateLimiter del container (app.state.container).
    - Excluye endpoints de infraestructura y preflight CORS.
    - Sin container o con el flag apagado, no hace nada.
    """

    EXCLUDED_PATHS = {"/healthz", "/readyz", "/metrics", "/openapi.json", "/docs", "/redoc"}
    PRESET = "api"

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if path in self.EXCLUDED_PATHS or scope.get("method", "").upper() == "OPTIONS":
            await self.app(scope, receive, send)
            return

        container = getattr(scope["app"].state, "container", None) if "app" in scope else None
        if container is None or not container.settings.api_rate_limit_enabled:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        ip = await resolve_client_ip(request)
        result = await container.rate_limiter.check_preset(f"{ip}:api", self.PRESET)

        if not result.allowed:
            retry_after = result.retry_after(container.rate_limiter.clock())
            logger.warning(
                "rate limit excedido",
                extra={"client_ip": ip, "path": path, "retry_after": retry_after},
            )
            exc = rate_limited_exception(RateLimitExceededError(result, retry_after))
            response = await app_exception_handler(request, exc)
            await response(scope, receive, send)
            return

        extra_headers = [
            (name.lower().encode(), value.encode())
            for name, value in rate_limit_headers(result).items()
        ]

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), *extra_headers]
            await send(message)

        await self.app(scope, receive, send_with_headers)
