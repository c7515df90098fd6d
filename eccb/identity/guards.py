"""
===============================================================================
TARJETA CRC — identity/guards.py
===============================================================================

Módulo:
    Guard Layer (páginas, acciones, roles)

Responsabilidades:
    - protect_page: sesión obligatoria (redirect a login con callbackUrl) y
      permiso opcional (redirect a forbidden).
    - protect_action: rate limit (SIEMPRE primero, también sin sesión), luego
      sesión (401) y permiso (403).
    - require_role / require_auth: variantes con redirect.
    - Exponer dependencias FastAPI para cada entry point.

Colaboradores:
    - identity.session.SessionAccessor
    - identity.resolver.PermissionResolver
    - application.rate_limiting.RateLimiter
    - crosscutting.rate_limit.resolve_client_ip
    - crosscutting.exceptions: RedirectRequired / UnauthorizedError /
      ForbiddenError / RateLimitExceededError
    - context.set_user_context (correlación de logs)

Máquina de estados:
    Start -> SessionFetched -> {NoSession -> Redirect/Fail}
          -> PermissionChecked -> {Denied -> Redirect/Fail} -> Allowed
===============================================================================
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import quote

from starlette.requests import Request

from ..application.rate_limiting import (
    DEFAULT_ACTION_RATE_LIMIT,
    RateLimiter,
    RateLimitOptions,
    RateLimitResult,
    get_preset,
)
from ..context import set_user_context
from ..crosscutting.exceptions import (
    ForbiddenError,
    RateLimitExceededError,
    RedirectRequired,
    UnauthorizedError,
)
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_access_denied
from ..crosscutting.rate_limit import resolve_client_ip
from .permissions import Permission
from .resolver import PermissionResolver
from .roles import RoleType
from .session import AuthSession, SessionAccessor, SessionInfo, SessionUser

PermissionLike = Permission | str
RoleLike = RoleType | str


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Resultado de un guard exitoso."""

    user: SessionUser
    session: SessionInfo
    rate_limit: Optional[RateLimitResult] = None


def _token(value: PermissionLike) -> str:
    return value.value if isinstance(value, Permission) else value


def _role_name(value: RoleLike) -> str:
    return value.value if isinstance(value, RoleType) else value


def build_login_redirect(redirect_path: str, request: Request) -> str:
    """redirect_path?callbackUrl=<path+query original, url-encoded>."""
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return f"{redirect_path}?callbackUrl={quote(target, safe='')}"


class Guards:
    """
    Entry points de autorización.

    Cada método recibe el request y devuelve AuthContext o levanta la
    condición correspondiente (el handler HTTP la traduce a 307/401/403/429).
    """

    def __init__(
        self,
        sessions: SessionAccessor,
        resolver: PermissionResolver,
        limiter: RateLimiter,
        *,
        login_path: str = "/login",
        forbidden_path: str = "/forbidden",
        client_ip: Callable[[Request], Awaitable[str]] = resolve_client_ip,
    ) -> None:
        self._sessions = sessions
        self._resolver = resolver
        self._limiter = limiter
        self._login_path = login_path
        self._forbidden_path = forbidden_path
        self._client_ip = client_ip

    @staticmethod
    def _allowed(session: AuthSession, result: RateLimitResult | None = None) -> AuthContext:
        set_user_context(session.user.id)
        return AuthContext(user=session.user, session=session.session, rate_limit=result)

    async def _has_permission(self, session: AuthSession, permission: str) -> bool:
        return await self._resolver.check_user_permission(session.user.id, permission)

    # ------------------------------------------------------------------
    # Páginas (redirect)
    # ------------------------------------------------------------------
    async def protect_page(
        self,
        request: Request,
        required_permission: PermissionLike | None = None,
        *,
        redirect_path: str | None = None,
        forbidden_path: str | None = None,
    ) -> AuthContext:
        session = await self._sessions.get_session(request)
        if session is None:
            record_access_denied("unauthorized")
            raise RedirectRequired(
                build_login_redirect(redirect_path or self._login_path, request)
            )

        if required_permission is not None:
            permission = _token(required_permission)
            if not await self._has_permission(session, permission):
                record_access_denied("forbidden")
                logger.warning(
                    "Página denegada: falta permiso",
                    extra={"user_id": session.user.id, "permission": permission},
                )
                raise RedirectRequired(forbidden_path or self._forbidden_path)

        return self._allowed(session)

    async def require_auth(self, request: Request) -> AuthContext:
        return await self.protect_page(request)

    async def require_role(self, request: Request, *allowed_roles: RoleLike) -> AuthContext:
        session = await self._sessions.get_session(request)
        if session is None:
            record_access_denied("unauthorized")
            raise RedirectRequired(build_login_redirect(self._login_path, request))

        wanted = [_role_name(r) for r in allowed_roles]
        if not await self._resolver.has_any_role(session.user.id, wanted):
            record_access_denied("forbidden")
            logger.warning(
                "Página denegada: rol insuficiente",
                extra={"user_id": session.user.id, "roles": wanted},
            )
            raise RedirectRequired(self._forbidden_path)

        return self._allowed(session)

    # ------------------------------------------------------------------
    # Acciones (excepciones tipadas)
    # ------------------------------------------------------------------
    async def protect_action(
        self,
        request: Request,
        required_permission: PermissionLike | None = None,
        *,
        rate_limit: RateLimitOptions = DEFAULT_ACTION_RATE_LIMIT,
    ) -> AuthContext:
        session, ip = await asyncio.gather(
            self._sessions.get_session(request), self._client_ip(request)
        )

        # R: el slot se consume antes de mirar la sesión.
        key = f"user:{session.user.id}" if session is not None else f"ip:{ip}"
        result = await self._limiter.check(
            key, rate_limit.limit, rate_limit.window_seconds
        )
        if not result.allowed:
            record_access_denied("rate_limited")
            raise RateLimitExceededError(
                result, result.retry_after(self._limiter.clock())
            )

        if session is None:
            record_access_denied("unauthorized")
            raise UnauthorizedError()

        if required_permission is not None:
            permission = _token(required_permission)
            if not await self._has_permission(session, permission):
                record_access_denied("forbidden")
                logger.warning(
                    "Acción denegada: falta permiso",
                    extra={"user_id": session.user.id, "permission": permission},
                )
                raise ForbiddenError(
                    f"Permiso requerido: {permission}", required=permission
                )

        return self._allowed(session, result)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_guards(request: Request) -> Guards:
    return request.app.state.container.guards


def require_page(
    required_permission: PermissionLike | None = None,
    *,
    redirect_path: str | None = None,
    forbidden_path: str | None = None,
) -> Callable:
    """Dependency FastAPI: guard de página (307 a login / forbidden)."""

    async def dependency(request: Request) -> AuthContext:
        ctx = await get_guards(request).protect_page(
            request,
            required_permission,
            redirect_path=redirect_path,
            forbidden_path=forbidden_path,
        )
        request.state.auth = ctx
        return ctx

    return dependency


def require_action(
    required_permission: PermissionLike | None = None,
    *,
    rate_limit: RateLimitOptions | None = None,
    preset: str | None = None,
) -> Callable:
    """
    Dependency FastAPI: guard de acción (429 / 401 / 403).

    `preset` toma el límite de RATE_LIMIT_PRESETS; si no se pasa nada se usa
    el default de 20 requests por minuto.
    """
    options = rate_limit or (get_preset(preset) if preset else DEFAULT_ACTION_RATE_LIMIT)

    async def dependency(request: Request) -> AuthContext:
        ctx = await get_guards(request).protect_action(
            request, required_permission, rate_limit=options
        )
        request.state.auth = ctx
        return ctx

    return dependency


def require_roles(*allowed_roles: RoleLike) -> Callable:
    """Dependency FastAPI: requiere alguno de los roles (redirect si no)."""

    async def dependency(request: Request) -> AuthContext:
        ctx = await get_guards(request).require_role(request, *allowed_roles)
        request.state.auth = ctx
        return ctx

    return dependency


def require_session() -> Callable:
    """Dependency FastAPI: requiere sesión (redirect a login si no hay)."""

    async def dependency(request: Request) -> AuthContext:
        ctx = await get_guards(request).require_auth(request)
        request.state.auth = ctx
        return ctx

    return dependency
