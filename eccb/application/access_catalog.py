"""
===============================================================================
USE CASE: Seed Access Catalog
===============================================================================

Name:
    Access Catalog Seeder

Responsibilities:
    - Upsert de los roles conocidos (ROLE_DEFINITIONS).
    - Upsert de cada permiso del catálogo con (resource, action, scope).
    - Vincular los permisos por defecto de cada rol.

Collaborators:
    - domain.repositories.AccessRepository
    - identity.permissions / identity.roles

Notes:
    - Idempotente: correrlo N veces deja el mismo estado; nunca quita
      vínculos agregados a mano.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass

from ..crosscutting.logger import logger
from ..domain.repositories import AccessRepository
from ..identity.permissions import ALL_PERMISSIONS, as_values, split_token
from ..identity.roles import DEFAULT_ROLE_PERMISSIONS, ROLE_DEFINITIONS


@dataclass(frozen=True)
class SeedReport:
    roles: int
    permissions: int
    new_grants: int


async def seed_access_catalog(repository: AccessRepository) -> SeedReport:
    for token in sorted(as_values(ALL_PERMISSIONS)):
        resource, action, scope = split_token(token)
        await repository.upsert_permission(
            name=token, resource=resource, action=action, scope=scope
        )

    new_grants = 0
    for definition in ROLE_DEFINITIONS:
        role = await repository.upsert_role(
            name=definition.name.value,
            display_name=definition.display_name,
            description=definition.description,
            type=definition.name.value,
        )
        defaults = DEFAULT_ROLE_PERMISSIONS.get(definition.name, ())
        if defaults:
            new_grants += await repository.grant_permissions(
                role.id, sorted(as_values(defaults))
            )

    report = SeedReport(
        roles=len(ROLE_DEFINITIONS),
        permissions=len(ALL_PERMISSIONS),
        new_grants=new_grants,
    )
    logger.info(
        "Catálogo de acceso sincronizado",
        extra={
            "roles": report.roles,
            "permissions": report.permissions,
            "new_grants": report.new_grants,
        },
    )
    return report
