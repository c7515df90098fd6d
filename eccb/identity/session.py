"""
===============================================================================
TARJETA CRC — identity/session.py
===============================================================================

Módulo:
    Session Accessor (JWT) + credenciales

Responsabilidades:
    - Hashear/verificar passwords (Argon2).
    - Emitir JWT de acceso (HS256) con expiración.
    - Decodificar y validar JWT (firma, exp, claims mínimos, typ).
    - Extraer token desde Authorization: Bearer o cookie.
    - Resolver la sesión actual: token -> user_id -> repo -> AuthSession.

Colaboradores:
    - domain.repositories.UserRepository: lookup por id / email.
    - crosscutting.config.Settings: secreto, TTL, cookie.
    - crosscutting.logger: logging estructurado.
    - identity.guards / audit.AuditLogger: consumidores de get_session().

Decisiones de diseño:
    - Token ausente, inválido o expirado => "sin sesión" (None). Los guards
      deciden si eso es redirect o 401.
    - Falla del repositorio de usuarios => se propaga (falla cerrada).
    - Usuario inexistente o inactivo => sin sesión.
    - No loguear secretos ni tokens.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from starlette.requests import Request

from ..crosscutting.config import Settings
from ..crosscutting.logger import logger
from ..domain.repositories import UserRepository
from ..domain.users import User

# ---------------------------------------------------------------------------
# Constantes
# ---------------------------------------------------------------------------

JWT_ALGORITHM: str = "HS256"

CLAIM_SUB: str = "sub"
CLAIM_EMAIL: str = "email"
CLAIM_NAME: str = "name"
CLAIM_IAT: str = "iat"
CLAIM_EXP: str = "exp"
CLAIM_TYP: str = "typ"

TOKEN_TYPE_ACCESS: str = "access"

_hasher = PasswordHasher()


# ---------------------------------------------------------------------------
# Contratos
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AuthSettings:
    """Subconjunto inmutable de Settings que usa la sesión."""

    jwt_secret: str
    jwt_access_ttl_minutes: int
    jwt_cookie_name: str
    jwt_cookie_secure: bool

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthSettings":
        return cls(
            jwt_secret=settings.jwt_secret,
            jwt_access_ttl_minutes=settings.jwt_access_ttl_minutes,
            jwt_cookie_name=settings.jwt_cookie_name,
            jwt_cookie_secure=settings.jwt_cookie_secure,
        )


@dataclass(frozen=True, slots=True)
class TokenPayload:
    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class SessionUser:
    id: str
    name: str
    email: str
    role: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SessionInfo:
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class AuthSession:
    """Identidad del caller. Read-only para la capa de guards."""

    user: SessionUser
    session: SessionInfo


# ---------------------------------------------------------------------------
# Passwords (Argon2)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    return _hasher.hash(plain)


def verify_password(plain: str, stored_hash: str) -> bool:
    """False ante mismatch o hash corrupto; nunca levanta."""
    try:
        return _hasher.verify(stored_hash, plain)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


# ---------------------------------------------------------------------------
# Tokens JWT
# ---------------------------------------------------------------------------


def create_access_token(
    user: User,
    settings: AuthSettings,
    *,
    now: datetime | None = None,
) -> tuple[str, int]:
    """Crea un JWT de acceso firmado. Retorna (token, expires_in_seconds)."""
    issued = now or datetime.now(timezone.utc)
    expires_in = int(settings.jwt_access_ttl_minutes * 60)

    payload: dict[str, object] = {
        CLAIM_SUB: str(user.id),
        CLAIM_EMAIL: user.email,
        CLAIM_NAME: user.name,
        CLAIM_IAT: int(issued.timestamp()),
        CLAIM_EXP: int((issued + timedelta(seconds=expires_in)).timestamp()),
        CLAIM_TYP: TOKEN_TYPE_ACCESS,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)
    return token, expires_in


def decode_access_token(token: str, settings: AuthSettings) -> TokenPayload | None:
    """Decodifica un JWT de acceso. None si es inválido, expiró o no es access."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": [CLAIM_SUB, CLAIM_EXP, CLAIM_IAT]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Token expirado")
        return None
    except jwt.InvalidTokenError as exc:
        logger.warning("Token inválido", extra={"error": type(exc).__name__})
        return None

    if payload.get(CLAIM_TYP, TOKEN_TYPE_ACCESS) != TOKEN_TYPE_ACCESS:
        return None

    subject = str(payload.get(CLAIM_SUB) or "")
    if not subject:
        return None

    return TokenPayload(
        user_id=subject,
        email=str(payload.get(CLAIM_EMAIL) or ""),
        issued_at=datetime.fromtimestamp(int(payload[CLAIM_IAT]), tz=timezone.utc),
        expires_at=datetime.fromtimestamp(int(payload[CLAIM_EXP]), tz=timezone.utc),
    )


def extract_access_token(request: Request, cookie_name: str) -> str | None:
    """Authorization: Bearer tiene prioridad; si no, la cookie de sesión."""
    header = (request.headers.get("authorization") or "").strip()
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(cookie_name) or None


# ---------------------------------------------------------------------------
# Session Accessor
# ---------------------------------------------------------------------------


class SessionAccessor:
    """
    Provee la identidad del caller a partir del request.

    Uso:
        session = await sessions.get_session(request)
        if session is None: ...
    """

    def __init__(
        self,
        users: UserRepository,
        settings: AuthSettings,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._users = users
        self._settings = settings
        self._now = now

    @property
    def settings(self) -> AuthSettings:
        return self._settings

    async def get_session(self, request: Request) -> AuthSession | None:
        token = extract_access_token(request, self._settings.jwt_cookie_name)
        if not token:
            return None

        payload = decode_access_token(token, self._settings)
        if payload is None:
            return None

        user = await self._users.get_user_by_id(payload.user_id)
        if user is None or not user.is_active:
            return None

        return AuthSession(
            user=SessionUser(id=user.id, name=user.name, email=user.email),
            session=SessionInfo(
                issued_at=payload.issued_at, expires_at=payload.expires_at
            ),
        )

    async def authenticate(self, email: str, password: str) -> User | None:
        """
        Valida credenciales. None si no coinciden.

        No diferencia "usuario no existe" de "password incorrecto"; un usuario
        inactivo tampoco autentica.
        """
        normalized = (email or "").strip().lower()
        if not normalized:
            return None

        user = await self._users.get_user_by_email(normalized)
        if user is None or not user.is_active:
            return None

        if not verify_password(password, user.password_hash):
            return None
        return user

    def issue_token(self, user: User) -> tuple[str, int]:
        return create_access_token(user, self._settings, now=self._now())
