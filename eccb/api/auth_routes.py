"""
===============================================================================
TARJETA CRC — eccb/api/auth_routes.py (Autenticación: login / logout / me)
===============================================================================

Responsabilidades:
  - Login con Argon2 + JWT (body y cookie httpOnly).
  - Rate limit de login por IP (preset sign_in) y bloqueo por email tras
    intentos fallidos.
  - Logout idempotente (borra cookie).
  - /auth/me: usuario de la sesión + roles + permisos efectivos.
  - Auditar auth.login (best-effort).

Patrones aplicados:
  - Adapter / Presentation Layer: traduce HTTP <-> servicios del container.
  - Fail-safe security: ante credenciales inválidas se deniega sin detallar.

Colaboradores:
  - container.AppContainer (sessions, auth_limits, resolver)
  - audit.AuditLogger
  - crosscutting.rate_limit (IP + headers 429)
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field, field_validator

from ..audit import AuditLogger, get_audit_logger
from ..container import AppContainer, get_container
from ..crosscutting.error_responses import (
    OPENAPI_ERROR_RESPONSES,
    rate_limited,
    unauthorized,
)
from ..crosscutting.exceptions import RateLimitExceededError
from ..crosscutting.logger import logger
from ..crosscutting.rate_limit import resolve_client_ip
from ..identity.session import AuthSettings, SessionUser

router = APIRouter(prefix="/auth", tags=["auth"], responses=OPENAPI_ERROR_RESPONSES)

AUDIT_ACTION_LOGIN = "auth.login"
AUDIT_ENTITY_USER = "User"


# -----------------------------------------------------------------------------
# Modelos HTTP (DTOs)
# -----------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=512)

    @field_validator("email")
    @classmethod
    def normalizar_email(cls, v: str) -> str:
        return v.strip().lower()


class SessionUserResponse(BaseModel):
    id: str
    name: str
    email: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: SessionUserResponse


class MeResponse(BaseModel):
    user: SessionUserResponse
    roles: list[str]
    permissions: list[str]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _set_auth_cookie(
    response: Response, settings: AuthSettings, token: str, expires_in: int
) -> None:
    response.set_cookie(
        key=settings.jwt_cookie_name,
        value=token,
        httponly=True,
        secure=settings.jwt_cookie_secure,
        samesite="lax",
        max_age=expires_in,
        path="/",
    )


def _clear_auth_cookie(response: Response, settings: AuthSettings) -> None:
    response.delete_cookie(
        key=settings.jwt_cookie_name,
        path="/",
        samesite="lax",
        secure=settings.jwt_cookie_secure,
    )


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    request: Request,
    response: Response,
    container: AppContainer = Depends(get_container),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """
    Inicia sesión y devuelve JWT (también como cookie httpOnly).

    - 429 si la IP agotó el preset sign_in o el email está bloqueado.
    - 401 genérico ante credenciales inválidas.
    """
    limits = container.auth_limits
    ip = await resolve_client_ip(request)

    ip_result = await limits.sign_in(ip)
    if not ip_result.allowed:
        raise RateLimitExceededError(
            ip_result, ip_result.retry_after(container.rate_limiter.clock())
        )

    block = await limits.check_block(req.email)
    if block.blocked:
        logger.warning("Login bloqueado por intentos fallidos", extra={"client_ip": ip})
        raise rate_limited(block.block_expires or 0)

    user = await container.sessions.authenticate(req.email, req.password)
    if user is None:
        await limits.record_failure(req.email)
        raise unauthorized("Credenciales inválidas.")

    await limits.clear(req.email)

    token, expires_in = container.sessions.issue_token(user)
    _set_auth_cookie(response, container.sessions.settings, token, expires_in)

    audit.record(
        AUDIT_ACTION_LOGIN,
        AUDIT_ENTITY_USER,
        entity_id=user.id,
        actor=SessionUser(id=user.id, name=user.name, email=user.email),
    )

    return LoginResponse(
        access_token=token,
        expires_in=expires_in,
        user=SessionUserResponse(id=user.id, name=user.name, email=user.email),
    )


@router.post("/logout")
async def logout(response: Response, container: AppContainer = Depends(get_container)):
    """Siempre borra la cookie; no requiere sesión."""
    _clear_auth_cookie(response, container.sessions.settings)
    return {"ok": True}


@router.get("/me", response_model=MeResponse)
async def me(request: Request, container: AppContainer = Depends(get_container)):
    session = await container.sessions.get_session(request)
    if session is None:
        raise unauthorized()

    roles = await container.resolver.get_user_roles(session.user.id)
    permissions = await container.resolver.get_user_permissions(session.user.id)
    return MeResponse(
        user=SessionUserResponse(
            id=session.user.id, name=session.user.name, email=session.user.email
        ),
        roles=sorted(roles),
        permissions=sorted(permissions),
    )
