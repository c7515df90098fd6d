"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Build the FastAPI application (metadata, middleware, routers, handlers)
  - Own the container lifecycle through the lifespan (open pool/Redis, drain
    pending audit writes, close)
  - Expose health, readiness and Prometheus metrics endpoints

Collaborators:
  - container.build_container: composition root
  - RequestContextMiddleware: request id + logging context
  - RateLimitMiddleware: per-IP "api" preset
  - CORSMiddleware: Cross-Origin Resource Sharing handler
  - auth_routes / admin_roles_routes / admin_audit_routes

Notes:
  - Middleware order (last added runs first):
    RequestContext -> RateLimit -> CORS -> routes
  - /healthz and /readyz follow the Kubernetes convention
  - Env validation happens in the lifespan, not at import time
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from ..container import AppContainer, build_container
from ..crosscutting.config import Settings, get_settings
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import RequestContextMiddleware
from ..crosscutting.rate_limit import RateLimitMiddleware
from ..identity.permissions import Permission
from .admin_audit_routes import router as admin_audit_router
from .admin_roles_routes import router as admin_roles_router
from .auth_routes import router as auth_router
from .exception_handlers import register_exception_handlers

ContainerFactory = Callable[[Settings], Awaitable[AppContainer]]


def _get_allowed_origins() -> list[str]:
    """CORS origins from settings, with fallback for import-time errors."""
    try:
        return get_settings().get_allowed_origins_list()
    except Exception:
        return ["http://localhost:3000"]


def _cors_allow_credentials() -> bool:
    try:
        return get_settings().cors_allow_credentials
    except Exception:
        return False


async def require_metrics_access(request: Request) -> None:
    """system.config cuando METRICS_REQUIRE_AUTH=true; abierto si no."""
    container = request.app.state.container
    if not container.settings.metrics_require_auth:
        return
    await container.guards.protect_action(request, Permission.SYSTEM_CONFIG)


def create_app(container_factory: ContainerFactory = build_container) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        container = await container_factory(settings)
        app.state.container = container

        logger.info(
            "ECCB access API starting up",
            extra={
                "app_env": settings.app_env,
                "api_rate_limit_enabled": settings.api_rate_limit_enabled,
                "permission_cache_ttl_seconds": settings.permission_cache_ttl_seconds,
                "db_pool_min": settings.db_pool_min_size,
                "db_pool_max": settings.db_pool_max_size,
            },
        )
        try:
            yield
        finally:
            await container.close()
            logger.info("ECCB access API shutting down")

    app = FastAPI(
        title="ECCB Access API",
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "auth", "description": "Sesiones JWT (login/logout/me)"},
            {"name": "admin", "description": "Gestión de roles (admin.users.manage)"},
            {"name": "audit", "description": "Audit log (admin.audit.view)"},
        ],
    )

    # R: last added = outermost.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(),
        allow_credentials=_cors_allow_credentials(),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-Id"],
        expose_headers=[
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(auth_router)
    app.include_router(admin_roles_router)
    app.include_router(admin_audit_router)

    register_exception_handlers(app)

    @app.get("/healthz")
    async def healthz(request: Request):
        """
        Health check with dependency status.

        Returns:
            ok: True if the database answers
            db / counter_store: "connected" or "disconnected"
            request_id: Correlation ID for this request
        """
        status = await request.app.state.container.readiness()
        return {
            "ok": status["ready"],
            "db": status["db"],
            "counter_store": status["counter_store"],
            "request_id": getattr(request.state, "request_id", None),
        }

    @app.get("/readyz")
    async def readyz(request: Request, response: Response):
        status = await request.app.state.container.readiness()
        if not status["ready"]:
            response.status_code = 503
        return {
            "ok": status["ready"],
            "db": status["db"],
            "request_id": getattr(request.state, "request_id", None),
        }

    @app.get("/metrics")
    async def metrics(_auth: None = Depends(require_metrics_access)):
        body, content_type = get_metrics_response()
        return Response(content=body, media_type=content_type)

    return app


app = create_app()
