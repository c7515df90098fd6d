"""
===============================================================================
TARJETA CRC — crosscutting/config.py (Settings de la capa de acceso)
===============================================================================

Responsabilidades:
  - Leer la configuración desde variables de entorno / .env (pydantic-settings).
  - Rechazar al arrancar valores inválidos: TTLs, paths de redirect, pool.
  - Exigir una postura segura cuando APP_ENV=production.

Colaboradores:
  - container.py: pool DB, Redis, TTL de cache, timeout de drenado de auditoría
  - api/main.py: CORS y flags de rate limit / métricas
  - identity/session.py: secreto, TTL y cookie de sesión

Notas:
  - get_settings() cachea la instancia; los tests construyen Settings(...)
    directamente o usan settings.model_copy(update=...).
===============================================================================
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_WEAK_SECRETS = frozenset({"dev-secret", "changeme", "change-me", "password", "secret"})
_MIN_SECRET_LENGTH = 32
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Configuración tipada; DATABASE_URL es la única variable obligatoria."""

    database_url: str
    app_env: str = "development"

    log_level: str = "INFO"
    log_json: bool = True

    # Contadores de rate limit + cache de permisos
    redis_url: str = "redis://localhost:6379/0"

    allowed_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True

    # Sesión (JWT HS256 en cookie httpOnly o Authorization: Bearer)
    jwt_secret: str = "dev-secret"
    jwt_access_ttl_minutes: int = 60 * 24
    jwt_cookie_name: str = "eccb_session"
    jwt_cookie_secure: bool = False

    # Redirects de las guards de página
    login_path: str = "/login"
    forbidden_path: str = "/forbidden"

    permission_cache_ttl_seconds: int = 300
    seed_access_catalog: bool = False
    api_rate_limit_enabled: bool = True
    metrics_require_auth: bool = False
    audit_drain_timeout_seconds: float = 5.0

    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_statement_timeout_ms: int = 30_000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("jwt_access_ttl_minutes", "permission_cache_ttl_seconds")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("login_path", "forbidden_path")
    @classmethod
    def _absolute_path(cls, v: str) -> str:
        path = (v or "").strip()
        if not path.startswith("/"):
            raise ValueError("redirect paths must start with '/'")
        return path

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = (v or "INFO").strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _pool_bounds(self):
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError(
                f"db_pool_min_size ({self.db_pool_min_size}) > "
                f"db_pool_max_size ({self.db_pool_max_size})"
            )
        return self

    @model_validator(mode="after")
    def _production_posture(self):
        if not self.is_production():
            return self

        secret = (self.jwt_secret or "").strip()
        problems = [
            message
            for failed, message in (
                (secret.lower() in _WEAK_SECRETS, "JWT_SECRET uses a default value"),
                (
                    len(secret) < _MIN_SECRET_LENGTH,
                    f"JWT_SECRET shorter than {_MIN_SECRET_LENGTH} characters",
                ),
                (not self.jwt_cookie_secure, "JWT_COOKIE_SECURE must be true"),
                (not self.metrics_require_auth, "METRICS_REQUIRE_AUTH must be true"),
                (not self.redis_url.strip(), "REDIS_URL is required"),
            )
            if failed
        ]
        if problems:
            raise ValueError("Insecure production settings: " + "; ".join(problems))
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def get_allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
