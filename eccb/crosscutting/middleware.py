# eccb/crosscutting/middleware.py
"""
===============================================================================
MÓDULO: Middleware ASGI de contexto de request
===============================================================================

CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  RequestContextMiddleware (ASGI puro, igual que RateLimitMiddleware)

Responsabilidades:
  - Aceptar X-Request-Id entrante (<= 128 chars) o generar uno nuevo
  - Exponerlo en request.state.request_id y en la respuesta
  - Setear contextvars (request_id / method / path) para los logs
  - Registrar latencia + status por request (excepto healthz / metrics)
  - Limpiar el contexto al terminar (no hay leaks entre requests)

Colaboradores:
  - eccb/context.py
  - crosscutting/metrics.record_request_metrics
  - crosscutting/logger
===============================================================================
"""

from __future__ import annotations

import time
import uuid

from ..context import clear_context, set_request_context
from .logger import logger
from .metrics import record_request_metrics

REQUEST_ID_HEADER = b"x-request-id"
MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(scope) -> str | None:
    for name, value in scope.get("headers", []):
        if name == REQUEST_ID_HEADER:
            candidate = value.decode("latin-1").strip()
            if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH:
                return candidate
    return None


class RequestContextMiddleware:
    QUIET_PATHS = {"/healthz", "/readyz", "/metrics"}

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or str(uuid.uuid4())
        method = scope.get("method", "")
        path = scope.get("path", "")

        scope.setdefault("state", {})["request_id"] = request_id
        set_request_context(request_id=request_id, method=method, path=path)

        status_code = 500
        started = time.perf_counter()

        async def send_with_request_id(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message["headers"] = [
                    *message.get("headers", []),
                    (REQUEST_ID_HEADER, request_id.encode("latin-1")),
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        except Exception:
            logger.exception("request falló", extra={"status_code": 500})
            raise
        finally:
            latency = time.perf_counter() - started
            record_request_metrics(
                endpoint=path,
                method=method,
                status_code=status_code,
                latency_seconds=latency,
            )
            if path not in self.QUIET_PATHS:
                logger.info(
                    "request completado",
                    extra={
                        "status_code": status_code,
                        "latency_ms": round(latency * 1000, 2),
                    },
                )
            clear_context()
