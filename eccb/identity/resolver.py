"""
===============================================================================
TARJETA CRC — identity/resolver.py
===============================================================================

Módulo:
    Permission Resolver

Responsabilidades:
    - Calcular el Effective Permission Set de un usuario (unión de permisos de
      todos sus roles vigentes).
    - Devolver los nombres de rol vigentes.
    - Verificar un token por match exacto.
    - Cache read-through opcional (permissions:<id> / roles:<id>, TTL 300 s).

Colaboradores:
    - domain.repositories.AccessRepository: fuente de verdad (SQL).
    - PermissionCachePort: Redis / memoria.
    - identity.roles: conjuntos ADMIN/STAFF/LIBRARIAN.
    - crosscutting.metrics.record_permission_cache

Política de fallas:
    - Repositorio: se propaga (falla cerrada).
    - Cache: lectura con error o dato corrupto => se va a la DB; escritura con
      error => log y se sigue.
===============================================================================
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_permission_cache
from ..domain.repositories import AccessRepository
from .roles import ADMIN_ROLES, LIBRARIAN_ROLES, STAFF_ROLES

PERMISSIONS_CACHE_PREFIX = "permissions:"
ROLES_CACHE_PREFIX = "roles:"
DEFAULT_CACHE_TTL_SECONDS = 300


class PermissionCachePort(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        ...

    async def delete(self, *keys: str) -> None:
        ...


def _decode_names(raw: str) -> frozenset[str] | None:
    """Lista JSON de strings -> frozenset. None si el dato está corrupto."""
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return None
    return frozenset(value)


class PermissionResolver:
    def __init__(
        self,
        repository: AccessRepository,
        *,
        cache: PermissionCachePort | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds
        self._now = now

    # ------------------------------------------------------------------
    # Cache (best-effort)
    # ------------------------------------------------------------------
    async def _cache_read(self, kind: str, key: str) -> frozenset[str] | None:
        if self._cache is None:
            return None
        try:
            raw = await self._cache.get(key)
        except Exception as exc:
            record_permission_cache(kind, "error")
            logger.warning(
                "Lectura de cache de permisos falló",
                extra={"cache_key": key, "error": str(exc)},
            )
            return None

        if raw is None:
            record_permission_cache(kind, "miss")
            return None

        names = _decode_names(raw)
        if names is None:
            record_permission_cache(kind, "error")
            logger.warning("Cache de permisos corrupta", extra={"cache_key": key})
            return None

        record_permission_cache(kind, "hit")
        return names

    async def _cache_write(self, key: str, names: frozenset[str]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.setex(
                key, self._cache_ttl_seconds, json.dumps(sorted(names))
            )
        except Exception as exc:
            logger.warning(
                "Escritura de cache de permisos falló",
                extra={"cache_key": key, "error": str(exc)},
            )

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------
    async def get_user_permissions(self, user_id: str) -> frozenset[str]:
        key = f"{PERMISSIONS_CACHE_PREFIX}{user_id}"
        cached = await self._cache_read("permissions", key)
        if cached is not None:
            return cached

        names = await self._repository.get_user_permission_names(
            user_id, now=self._now()
        )
        await self._cache_write(key, names)
        return names

    async def get_user_roles(self, user_id: str) -> frozenset[str]:
        key = f"{ROLES_CACHE_PREFIX}{user_id}"
        cached = await self._cache_read("roles", key)
        if cached is not None:
            return cached

        names = await self._repository.get_user_role_names(user_id, now=self._now())
        await self._cache_write(key, names)
        return names

    async def check_user_permission(self, user_id: str, permission: str) -> bool:
        return permission in await self.get_user_permissions(user_id)

    async def has_any_role(self, user_id: str, roles: Iterable[str]) -> bool:
        wanted = {r.value if hasattr(r, "value") else r for r in roles}
        return not wanted.isdisjoint(await self.get_user_roles(user_id))

    async def is_admin(self, user_id: str) -> bool:
        return await self.has_any_role(user_id, ADMIN_ROLES)

    async def is_staff(self, user_id: str) -> bool:
        return await self.has_any_role(user_id, STAFF_ROLES)

    async def is_librarian(self, user_id: str) -> bool:
        return await self.has_any_role(user_id, LIBRARIAN_ROLES)

    async def invalidate(self, user_id: str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.delete(
                f"{PERMISSIONS_CACHE_PREFIX}{user_id}", f"{ROLES_CACHE_PREFIX}{user_id}"
            )
        except Exception as exc:
            logger.warning(
                "Invalidación de cache de permisos falló",
                extra={"user_id": user_id, "error": str(exc)},
            )
