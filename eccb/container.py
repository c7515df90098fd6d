"""
===============================================================================
TARJETA CRC — eccb/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer dependencias (pool, Redis, repositorios, servicios, guards).
  - Ser dueño del ciclo de vida de recursos pesados: abrir en el startup,
    drenar auditoría pendiente y cerrar en el shutdown.
  - Ofrecer una variante in-memory (tests / desarrollo sin infraestructura).

Colaboradores:
  - crosscutting.config.Settings
  - infrastructure.db.pool / infrastructure.redis_client
  - infrastructure.repositories.{postgres,in_memory}
  - infrastructure.counters / infrastructure.permission_cache
  - identity.{session,resolver,guards}
  - application.{rate_limiting,role_assignment,audit_reports}

Patrones aplicados:
  - Composition Root
  - Dependency Inversion (servicios dependen de puertos)

Notas:
  - Este archivo NO contiene lógica de negocio.
  - La instancia vive en app.state.container (la crea el lifespan de FastAPI).
===============================================================================
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import redis.asyncio as redis
from psycopg_pool import AsyncConnectionPool
from starlette.requests import Request

from .application.access_catalog import seed_access_catalog
from .application.audit_reports import AuditReportService
from .application.rate_limiting import AuthRateLimits, CounterStorePort, RateLimiter
from .application.role_assignment import RoleAssignmentService
from .crosscutting.config import Settings
from .crosscutting.logger import logger
from .crosscutting.tasks import NonCriticalTaskRunner
from .domain.repositories import AccessRepository, AuditLogRepository, UserRepository
from .identity.guards import Guards
from .identity.resolver import PermissionCachePort, PermissionResolver
from .identity.session import AuthSettings, SessionAccessor
from .infrastructure.counters import InMemoryCounterStore, RedisCounterStore
from .infrastructure.db import close_pool, open_pool, ping
from .infrastructure.permission_cache import (
    InMemoryPermissionCache,
    RedisPermissionCache,
)
from .infrastructure.redis_client import close_redis_client, create_redis_client
from .infrastructure.repositories.in_memory import (
    InMemoryAccessRepository,
    InMemoryAuditLogRepository,
    InMemoryUserRepository,
)
from .infrastructure.repositories.postgres import (
    PostgresAccessRepository,
    PostgresAuditLogRepository,
    PostgresUserRepository,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppContainer:
    settings: Settings
    counter_store: CounterStorePort
    rate_limiter: RateLimiter
    auth_limits: AuthRateLimits
    user_repository: UserRepository
    access_repository: AccessRepository
    audit_repository: AuditLogRepository
    resolver: PermissionResolver
    sessions: SessionAccessor
    guards: Guards
    role_service: RoleAssignmentService
    audit_reports: AuditReportService
    tasks: NonCriticalTaskRunner
    redis: Optional[redis.Redis] = None
    pool: Optional[AsyncConnectionPool] = None

    async def readiness(self) -> dict[str, Any]:
        """Estado de dependencias para /readyz."""
        db_ok = await ping(self.pool) if self.pool is not None else True
        counters_ok = await self.counter_store.ping()
        return {
            "db": "connected" if db_ok else "disconnected",
            "counter_store": "connected" if counters_ok else "disconnected",
            "ready": db_ok,
        }

    async def close(self) -> None:
        pending = await self.tasks.drain(self.settings.audit_drain_timeout_seconds)
        if pending:
            logger.warning(
                "Shutdown con auditoría pendiente", extra={"cancelled": pending}
            )
        await close_redis_client(self.redis)
        self.redis = None
        await close_pool(self.pool)
        self.pool = None


def _compose(
    settings: Settings,
    *,
    counter_store: CounterStorePort,
    cache: PermissionCachePort,
    user_repository: UserRepository,
    access_repository: AccessRepository,
    audit_repository: AuditLogRepository,
    clock: Callable[[], float],
    now: Callable[[], datetime],
    redis_client: Optional[redis.Redis] = None,
    pool: Optional[AsyncConnectionPool] = None,
) -> AppContainer:
    limiter = RateLimiter(counter_store, clock=clock)
    resolver = PermissionResolver(
        access_repository,
        cache=cache,
        cache_ttl_seconds=settings.permission_cache_ttl_seconds,
        now=now,
    )
    sessions = SessionAccessor(
        user_repository, AuthSettings.from_settings(settings), now=now
    )
    return AppContainer(
        settings=settings,
        counter_store=counter_store,
        rate_limiter=limiter,
        auth_limits=AuthRateLimits(limiter, counter_store),
        user_repository=user_repository,
        access_repository=access_repository,
        audit_repository=audit_repository,
        resolver=resolver,
        sessions=sessions,
        guards=Guards(
            sessions,
            resolver,
            limiter,
            login_path=settings.login_path,
            forbidden_path=settings.forbidden_path,
        ),
        role_service=RoleAssignmentService(
            access_repository, user_repository, resolver
        ),
        audit_reports=AuditReportService(audit_repository, now=now),
        tasks=NonCriticalTaskRunner(),
        redis=redis_client,
        pool=pool,
    )


async def build_container(settings: Settings) -> AppContainer:
    """Runtime: Postgres + Redis. Falla si el pool no puede abrir."""
    pool = await open_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        statement_timeout_ms=settings.db_statement_timeout_ms,
    )
    client = create_redis_client(settings.redis_url)

    container = _compose(
        settings,
        counter_store=RedisCounterStore(client),
        cache=RedisPermissionCache(client),
        user_repository=PostgresUserRepository(pool),
        access_repository=PostgresAccessRepository(pool),
        audit_repository=PostgresAuditLogRepository(pool),
        clock=time.time,
        now=_utcnow,
        redis_client=client,
        pool=pool,
    )

    if settings.seed_access_catalog:
        await seed_access_catalog(container.access_repository)

    logger.info(
        "Container listo",
        extra={"app_env": settings.app_env, "pool_max": settings.db_pool_max_size},
    )
    return container


def build_in_memory_container(
    settings: Settings,
    *,
    clock: Callable[[], float] = time.time,
    now: Callable[[], datetime] = _utcnow,
) -> AppContainer:
    """Tests / desarrollo: todo en memoria, mismo cableado que runtime."""
    return _compose(
        settings,
        counter_store=InMemoryCounterStore(clock=clock),
        cache=InMemoryPermissionCache(clock=clock),
        user_repository=InMemoryUserRepository(),
        access_repository=InMemoryAccessRepository(),
        audit_repository=InMemoryAuditLogRepository(now=now),
        clock=clock,
        now=now,
    )


def get_container(request: Request) -> AppContainer:
    """Dependency FastAPI: container del proceso."""
    return request.app.state.container
