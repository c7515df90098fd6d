# =============================================================================
# FILE: infrastructure/repositories/in_memory/access.py
# =============================================================================
"""
In-Memory Access Repository (roles, permissions, assignments) for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from ....domain.access import PermissionRecord, Role, RoleAssignment
from ....identity.permissions import split_token


class InMemoryAccessRepository:
    """
    In-memory implementation of AccessRepository.

    Useful for:
      - Unit testing (guards, resolver, role administration)
      - Local development without database
    """

    def __init__(self) -> None:
        self._roles: Dict[str, Role] = {}  # role_id -> Role
        self._permissions: Dict[str, PermissionRecord] = {}  # name -> record
        self._role_permissions: Dict[str, set[str]] = {}  # role_id -> names
        self._assignments: Dict[tuple[str, str], RoleAssignment] = {}

    # ------------------------------------------------------------
    # Effective Permission Set
    # ------------------------------------------------------------
    def _active_role_ids(self, user_id: str, now: datetime) -> list[str]:
        return [
            a.role_id
            for (uid, _), a in self._assignments.items()
            if uid == user_id and a.is_active_at(now)
        ]

    async def get_user_permission_names(
        self, user_id: str, *, now: datetime
    ) -> frozenset[str]:
        names: set[str] = set()
        for role_id in self._active_role_ids(user_id, now):
            names |= self._role_permissions.get(role_id, set())
        return frozenset(names)

    async def get_user_role_names(
        self, user_id: str, *, now: datetime
    ) -> frozenset[str]:
        return frozenset(
            self._roles[role_id].name
            for role_id in self._active_role_ids(user_id, now)
            if role_id in self._roles
        )

    # ------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------
    async def list_roles(self) -> List[Role]:
        return sorted(self._roles.values(), key=lambda r: r.name)

    async def get_role(self, role_id: str) -> Optional[Role]:
        return self._roles.get(role_id)

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        return next((r for r in self._roles.values() if r.name == name), None)

    async def list_role_permissions(self, role_id: str) -> List[PermissionRecord]:
        names = sorted(self._role_permissions.get(role_id, set()))
        return [self._permissions[n] for n in names if n in self._permissions]

    # ------------------------------------------------------------
    # Asignaciones
    # ------------------------------------------------------------
    async def get_assignment(
        self, user_id: str, role_id: str
    ) -> Optional[RoleAssignment]:
        return self._assignments.get((user_id, role_id))

    async def create_assignment(
        self,
        *,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str],
        expires_at: Optional[datetime] = None,
    ) -> RoleAssignment:
        assignment = RoleAssignment(
            id=str(uuid4()),
            user_id=user_id,
            role_id=role_id,
            assigned_at=datetime.now(timezone.utc),
            assigned_by=assigned_by,
            expires_at=expires_at,
        )
        self._assignments[(user_id, role_id)] = assignment
        return assignment

    async def delete_assignment(self, user_id: str, role_id: str) -> bool:
        return self._assignments.pop((user_id, role_id), None) is not None

    # ------------------------------------------------------------
    # Catálogo
    # ------------------------------------------------------------
    async def upsert_role(
        self,
        *,
        name: str,
        display_name: str,
        description: Optional[str],
        type: Optional[str],
    ) -> Role:
        existing = await self.get_role_by_name(name)
        if existing is not None:
            return existing
        role = Role(
            id=str(uuid4()),
            name=name,
            display_name=display_name,
            description=description,
            type=type,
        )
        self._roles[role.id] = role
        return role

    async def upsert_permission(
        self,
        *,
        name: str,
        resource: str,
        action: Optional[str],
        scope: Optional[str],
    ) -> PermissionRecord:
        existing = self._permissions.get(name)
        if existing is not None:
            return existing
        record = PermissionRecord(
            id=str(uuid4()), name=name, resource=resource, action=action, scope=scope
        )
        self._permissions[name] = record
        return record

    async def grant_permissions(
        self, role_id: str, permission_names: Iterable[str]
    ) -> int:
        granted = self._role_permissions.setdefault(role_id, set())
        added = 0
        for name in permission_names:
            if name in self._permissions and name not in granted:
                granted.add(name)
                added += 1
        return added

    async def ping(self) -> bool:
        return True

    # ------------------------------------------------------------
    # Helpers de test
    # ------------------------------------------------------------
    async def add_role_with_permissions(
        self, name: str, permission_names: Iterable[str]
    ) -> Role:
        """Crea (o reutiliza) un rol y le otorga los tokens dados."""
        names = list(permission_names)
        for token in names:
            resource, action, scope = split_token(token)
            await self.upsert_permission(
                name=token, resource=resource, action=action, scope=scope
            )
        role = await self.upsert_role(
            name=name, display_name=name.title(), description=None, type=name
        )
        await self.grant_permissions(role.id, names)
        return role
