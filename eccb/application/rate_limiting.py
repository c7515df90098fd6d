# =============================================================================
# FILE: application/rate_limiting.py
# =============================================================================
"""
===============================================================================
SERVICE: Rate Limiting (Fixed Window Counter)
===============================================================================

Name:
    Rate Limiting Service

Qué es:
    Limitador de ventana fija sobre un store de contadores externo (Redis en
    producción, memoria en tests). Decide allow/deny por key.

Política de fallas:
    - Si el store no responde, el limitador FALLA ABIERTO (allowed=True,
      remaining=1) y loguea. Un Redis caído no puede bloquear tráfico legítimo.
    - Sin reintentos: un intento por llamada.

Arquitectura:
    - Capa: Application (policy/service)
    - Patrón: Fixed Window Counter
    - Storage: Abstracción via Protocol (CounterStorePort)

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: RateLimiter
Responsibilities:
  - Verificar si una key puede consumir un slot en la ventana actual
  - Incrementar el contador (atómico + expiry solo en el primer incremento)
  - Exponer presets con nombre (auth, api, sign_in, ...)
Collaborators:
  - CounterStorePort: persistencia de contadores
  - crosscutting.metrics: decisiones allowed/denied/fail_open

Component: AuthRateLimits
Responsibilities:
  - Límites de password reset / verificación de email (por email y por IP)
  - Límites de sign-in / sign-up por IP
  - Bloqueo progresivo por intentos fallidos (auth-block:<id>)
Collaborators:
  - RateLimiter, CounterStorePort
===============================================================================
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Final, Mapping, Optional, Protocol

from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_rate_limit_decision

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
RATE_LIMIT_KEY_PREFIX: Final[str] = "rate-limit:"
AUTH_BLOCK_KEY_PREFIX: Final[str] = "auth-block:"

_FAIL_OPEN_REMAINING: Final[int] = 1
_DEFAULT_BLOCK_ATTEMPTS: Final[int] = 5
_DEFAULT_BLOCK_SECONDS: Final[int] = 900  # 15 minutos


# -----------------------------------------------------------------------------
# Ports
# -----------------------------------------------------------------------------
class CounterStorePort(Protocol):
    """
    Port para el store de contadores.

    Implementaciones:
      - RedisCounterStore: GET + INCR + EXPIRE atómicos vía scripts Lua
      - InMemoryCounterStore: para testing/desarrollo
    """

    async def get(self, key: str) -> Optional[str]:
        """Valor crudo del contador (None si no existe o expiró)."""
        ...

    async def increment(self, key: str, window_seconds: int) -> int:
        """
        Incrementa atómicamente y retorna el nuevo valor.

        Si es el primer incremento (valor == 1) setea expiry a window_seconds.
        """
        ...

    async def consume(
        self, key: str, limit: int, window_seconds: int
    ) -> tuple[bool, int]:
        """
        Lee + incrementa en una sola operación atómica.

        Si el contador ya alcanzó `limit` no lo toca y retorna (False, count);
        si no, incrementa (expiry en el primer incremento) y retorna
        (True, nuevo_count).
        """
        ...

    async def ttl(self, key: str) -> int:
        """Segundos restantes (-2 si no existe, -1 si no tiene expiry)."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def ping(self) -> bool:
        ...


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RateLimitOptions:
    """Límite + ventana (segundos) de un rate limit."""

    limit: int
    window_seconds: int


DEFAULT_ACTION_RATE_LIMIT: Final[RateLimitOptions] = RateLimitOptions(
    limit=20, window_seconds=60
)

RATE_LIMIT_PRESETS: Final[Mapping[str, RateLimitOptions]] = {
    # Autenticación genérica
    "auth": RateLimitOptions(5, 60),
    # Formulario de contacto
    "contact": RateLimitOptions(5, 3600),
    # Descargas de archivos
    "files": RateLimitOptions(30, 60),
    "upload": RateLimitOptions(10, 60),
    "rsvp": RateLimitOptions(10, 60),
    # API general (middleware por IP)
    "api": RateLimitOptions(100, 60),
    "static": RateLimitOptions(1000, 60),
    # Flujos de cuenta
    "password_reset": RateLimitOptions(3, 3600),
    "password_reset_ip": RateLimitOptions(5, 3600),
    "email_verification": RateLimitOptions(5, 3600),
    "email_verification_ip": RateLimitOptions(10, 3600),
    "sign_up": RateLimitOptions(3, 3600),
    "sign_in": RateLimitOptions(5, 60),
    # Acciones administrativas
    "admin_action": RateLimitOptions(20, 60),
    # Smart upload (pipeline externo, caro)
    "smart_upload": RateLimitOptions(5, 60),
    "second_pass": RateLimitOptions(10, 60),
}


def get_preset(name: str) -> RateLimitOptions:
    try:
        return RATE_LIMIT_PRESETS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown rate limit preset: {name}") from exc


# -----------------------------------------------------------------------------
# Result Types
# -----------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """
    Resultado de una verificación de rate limit.

    Attributes:
        allowed: True si la acción está permitida
        limit: Límite configurado para la ventana
        remaining: Slots restantes en la ventana
        reset: Epoch seconds estimado de fin de ventana (now + window al
               momento de la llamada; aproximado, solo como hint de back-off)
    """

    allowed: bool
    limit: int
    remaining: int
    reset: int

    def retry_after(self, now: float) -> int:
        """Segundos hasta el reset (nunca negativo)."""
        return max(0, math.ceil(self.reset - now))


@dataclass(frozen=True, slots=True)
class AuthBlockStatus:
    blocked: bool
    remaining_attempts: int
    block_expires: Optional[int] = None


# -----------------------------------------------------------------------------
# Rate Limiter Service
# -----------------------------------------------------------------------------
class RateLimiter:
    """
    Servicio de rate limiting de ventana fija.

    Uso típico:
        limiter = RateLimiter(store)

        result = await limiter.check("user:42", limit=20, window_seconds=60)
        if not result.allowed:
            raise RateLimitExceededError(result, result.retry_after(time.time()))
    """

    def __init__(
        self,
        store: CounterStorePort,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._clock = clock

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    async def check(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """
        Verifica y consume un slot para `key`.

        Raises:
            ValueError: si key está vacía, limit < 1 o window_seconds < 1.
        """
        if not key:
            raise ValueError("rate limit key must be non-empty")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        reset = int(self._clock()) + window_seconds
        store_key = f"{RATE_LIMIT_KEY_PREFIX}{key}"

        try:
            allowed, count = await self._store.consume(store_key, limit, window_seconds)
        except Exception as exc:
            record_rate_limit_decision("fail_open")
            logger.error(
                "Rate limiter store error; failing open",
                extra={"rate_limit_key": key, "error": str(exc)},
            )
            return RateLimitResult(
                allowed=True, limit=limit, remaining=_FAIL_OPEN_REMAINING, reset=reset
            )

        if not allowed:
            record_rate_limit_decision("denied")
            logger.warning(
                "Rate limit exceeded",
                extra={"rate_limit_key": key, "limit": limit, "count": count},
            )
            return RateLimitResult(allowed=False, limit=limit, remaining=0, reset=reset)

        record_rate_limit_decision("allowed")
        return RateLimitResult(
            allowed=True, limit=limit, remaining=max(0, limit - count), reset=reset
        )

    async def check_options(self, key: str, options: RateLimitOptions) -> RateLimitResult:
        return await self.check(key, options.limit, options.window_seconds)

    async def check_preset(self, key: str, preset: str) -> RateLimitResult:
        return await self.check_options(key, get_preset(preset))


# -----------------------------------------------------------------------------
# Auth-specific limits
# -----------------------------------------------------------------------------
class AuthRateLimits:
    """
    Límites específicos de autenticación.

    Todos los chequeos de doble nivel (email + IP) evalúan primero el email:
    si ya está bloqueado no se consume el slot de la IP.
    """

    def __init__(self, limiter: RateLimiter, store: CounterStorePort) -> None:
        self._limiter = limiter
        self._store = store

    async def password_reset(self, email: str, ip: str) -> RateLimitResult:
        email_result = await self._limiter.check_preset(
            f"password-reset:email:{email.lower()}", "password_reset"
        )
        if not email_result.allowed:
            return email_result
        return await self._limiter.check_preset(
            f"password-reset:ip:{ip}", "password_reset_ip"
        )

    async def email_verification(self, email: str, ip: str) -> RateLimitResult:
        email_result = await self._limiter.check_preset(
            f"email-verification:email:{email.lower()}", "email_verification"
        )
        if not email_result.allowed:
            return email_result
        return await self._limiter.check_preset(
            f"email-verification:ip:{ip}", "email_verification_ip"
        )

    async def sign_in(self, ip: str) -> RateLimitResult:
        return await self._limiter.check_preset(f"{ip}:sign-in", "sign_in")

    async def sign_up(self, ip: str) -> RateLimitResult:
        return await self._limiter.check_preset(f"{ip}:sign-up", "sign_up")

    # ------------------------------------------------------------------
    # Bloqueo por intentos fallidos
    # ------------------------------------------------------------------
    async def check_block(
        self,
        identifier: str,
        max_attempts: int = _DEFAULT_BLOCK_ATTEMPTS,
        block_seconds: int = _DEFAULT_BLOCK_SECONDS,
    ) -> AuthBlockStatus:
        key = f"{AUTH_BLOCK_KEY_PREFIX}{identifier}"
        try:
            raw = await self._store.get(key)
            attempts = int(raw) if raw else 0

            if attempts >= max_attempts:
                ttl = await self._store.ttl(key)
                return AuthBlockStatus(
                    blocked=True,
                    remaining_attempts=0,
                    block_expires=ttl if ttl > 0 else block_seconds,
                )

            return AuthBlockStatus(
                blocked=False, remaining_attempts=max_attempts - attempts
            )
        except Exception as exc:
            logger.error(
                "Auth block check failed; failing open",
                extra={"identifier": identifier, "error": str(exc)},
            )
            return AuthBlockStatus(blocked=False, remaining_attempts=max_attempts)

    async def record_failure(
        self, identifier: str, window_seconds: int = _DEFAULT_BLOCK_SECONDS
    ) -> None:
        try:
            await self._store.increment(
                f"{AUTH_BLOCK_KEY_PREFIX}{identifier}", window_seconds
            )
        except Exception as exc:
            logger.error(
                "Failed to record auth attempt",
                extra={"identifier": identifier, "error": str(exc)},
            )

    async def clear(self, identifier: str) -> None:
        try:
            await self._store.delete(f"{AUTH_BLOCK_KEY_PREFIX}{identifier}")
        except Exception as exc:
            logger.error(
                "Failed to clear auth attempts",
                extra={"identifier": identifier, "error": str(exc)},
            )
