"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/access.py
============================================================
Class: PostgresAccessRepository

Responsibilities:
  - Resolver permisos/roles efectivos de un usuario (JOIN user_roles ->
    role_permissions -> permissions) ignorando asignaciones vencidas.
  - Alta/baja de asignaciones usuario-rol.
  - Upserts idempotentes del catálogo (roles, permisos, vínculos).

Collaborators:
  - psycopg_pool.AsyncConnectionPool (inyectado)
  - domain.access: Role, PermissionRecord, RoleAssignment
  - postgres._sql helpers (DatabaseError + logging)

Constraints / Notes:
  - Los errores se propagan (DatabaseError): la autorización falla cerrada.
  - Los tokens se devuelven tal cual están en la tabla (sin normalizar).
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from psycopg_pool import AsyncConnectionPool

from ....domain.access import PermissionRecord, Role, RoleAssignment
from ._sql import execute, fetchall, fetchone

_ROLE_COLUMNS = "id, name, display_name, description, type"
_PERMISSION_COLUMNS = "id, name, resource, action, scope, description"
_P_PERMISSION_COLUMNS = "p.id, p.name, p.resource, p.action, p.scope, p.description"
_ASSIGNMENT_COLUMNS = "id, user_id, role_id, assigned_at, assigned_by, expires_at"

_ACTIVE_ASSIGNMENT = "(ur.expires_at IS NULL OR ur.expires_at > %s)"


def _row_to_role(row: tuple) -> Role:
    return Role(
        id=row[0],
        name=row[1],
        display_name=row[2],
        description=row[3],
        type=row[4],
    )


def _row_to_permission(row: tuple) -> PermissionRecord:
    return PermissionRecord(
        id=row[0],
        name=row[1],
        resource=row[2],
        action=row[3],
        scope=row[4],
        description=row[5],
    )


def _row_to_assignment(row: tuple) -> RoleAssignment:
    return RoleAssignment(
        id=row[0],
        user_id=row[1],
        role_id=row[2],
        assigned_at=row[3],
        assigned_by=row[4],
        expires_at=row[5],
    )


class PostgresAccessRepository:
    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    # ------------------------------------------------------------
    # Effective Permission Set
    # ------------------------------------------------------------
    async def get_user_permission_names(
        self, user_id: str, *, now: datetime
    ) -> frozenset[str]:
        rows = await fetchall(
            self._pool,
            query=f"""
                SELECT DISTINCT p.name
                FROM user_roles ur
                JOIN role_permissions rp ON rp.role_id = ur.role_id
                JOIN permissions p ON p.id = rp.permission_id
                WHERE ur.user_id = %s AND {_ACTIVE_ASSIGNMENT}
            """,
            params=(user_id, now),
            log_msg="PostgresAccessRepository: get_user_permission_names failed",
            log_extra={"user_id": user_id},
        )
        return frozenset(row[0] for row in rows)

    async def get_user_role_names(
        self, user_id: str, *, now: datetime
    ) -> frozenset[str]:
        rows = await fetchall(
            self._pool,
            query=f"""
                SELECT DISTINCT r.name
                FROM user_roles ur
                JOIN roles r ON r.id = ur.role_id
                WHERE ur.user_id = %s AND {_ACTIVE_ASSIGNMENT}
            """,
            params=(user_id, now),
            log_msg="PostgresAccessRepository: get_user_role_names failed",
            log_extra={"user_id": user_id},
        )
        return frozenset(row[0] for row in rows)

    # ------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------
    async def list_roles(self) -> List[Role]:
        rows = await fetchall(
            self._pool,
            query=f"SELECT {_ROLE_COLUMNS} FROM roles ORDER BY name",
            log_msg="PostgresAccessRepository: list_roles failed",
            log_extra={},
        )
        return [_row_to_role(row) for row in rows]

    async def get_role(self, role_id: str) -> Optional[Role]:
        row = await fetchone(
            self._pool,
            query=f"SELECT {_ROLE_COLUMNS} FROM roles WHERE id = %s",
            params=(role_id,),
            log_msg="PostgresAccessRepository: get_role failed",
            log_extra={"role_id": role_id},
        )
        return _row_to_role(row) if row else None

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        row = await fetchone(
            self._pool,
            query=f"SELECT {_ROLE_COLUMNS} FROM roles WHERE name = %s",
            params=(name,),
            log_msg="PostgresAccessRepository: get_role_by_name failed",
            log_extra={"role_name": name},
        )
        return _row_to_role(row) if row else None

    async def list_role_permissions(self, role_id: str) -> List[PermissionRecord]:
        rows = await fetchall(
            self._pool,
            query=f"""
                SELECT {_P_PERMISSION_COLUMNS}
                FROM role_permissions rp
                JOIN permissions p ON p.id = rp.permission_id
                WHERE rp.role_id = %s
                ORDER BY p.name
            """,
            params=(role_id,),
            log_msg="PostgresAccessRepository: list_role_permissions failed",
            log_extra={"role_id": role_id},
        )
        return [_row_to_permission(row) for row in rows]

    # ------------------------------------------------------------
    # Asignaciones
    # ------------------------------------------------------------
    async def get_assignment(
        self, user_id: str, role_id: str
    ) -> Optional[RoleAssignment]:
        row = await fetchone(
            self._pool,
            query=f"""
                SELECT {_ASSIGNMENT_COLUMNS}
                FROM user_roles
                WHERE user_id = %s AND role_id = %s
            """,
            params=(user_id, role_id),
            log_msg="PostgresAccessRepository: get_assignment failed",
            log_extra={"user_id": user_id, "role_id": role_id},
        )
        return _row_to_assignment(row) if row else None

    async def create_assignment(
        self,
        *,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str],
        expires_at: Optional[datetime] = None,
    ) -> RoleAssignment:
        row = await fetchone(
            self._pool,
            query=f"""
                INSERT INTO user_roles (id, user_id, role_id, assigned_by, expires_at)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_ASSIGNMENT_COLUMNS}
            """,
            params=(str(uuid4()), user_id, role_id, assigned_by, expires_at),
            log_msg="PostgresAccessRepository: create_assignment failed",
            log_extra={"user_id": user_id, "role_id": role_id},
        )
        return _row_to_assignment(row)

    async def delete_assignment(self, user_id: str, role_id: str) -> bool:
        deleted = await execute(
            self._pool,
            query="DELETE FROM user_roles WHERE user_id = %s AND role_id = %s",
            params=(user_id, role_id),
            log_msg="PostgresAccessRepository: delete_assignment failed",
            log_extra={"user_id": user_id, "role_id": role_id},
        )
        return deleted > 0

    # ------------------------------------------------------------
    # Catálogo (seed idempotente)
    # ------------------------------------------------------------
    async def upsert_role(
        self,
        *,
        name: str,
        display_name: str,
        description: Optional[str],
        type: Optional[str],
    ) -> Role:
        # R: un rol existente no se pisa; el DO UPDATE no-op permite RETURNING.
        row = await fetchone(
            self._pool,
            query=f"""
                INSERT INTO roles (id, name, display_name, description, type)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
                RETURNING {_ROLE_COLUMNS}
            """,
            params=(str(uuid4()), name, display_name, description, type),
            log_msg="PostgresAccessRepository: upsert_role failed",
            log_extra={"role_name": name},
        )
        return _row_to_role(row)

    async def upsert_permission(
        self,
        *,
        name: str,
        resource: str,
        action: Optional[str],
        scope: Optional[str],
    ) -> PermissionRecord:
        row = await fetchone(
            self._pool,
            query=f"""
                INSERT INTO permissions (id, name, resource, action, scope)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
                RETURNING {_PERMISSION_COLUMNS}
            """,
            params=(str(uuid4()), name, resource, action, scope),
            log_msg="PostgresAccessRepository: upsert_permission failed",
            log_extra={"permission": name},
        )
        return _row_to_permission(row)

    async def grant_permissions(
        self, role_id: str, permission_names: Iterable[str]
    ) -> int:
        names = list(permission_names)
        if not names:
            return 0
        return await execute(
            self._pool,
            query="""
                INSERT INTO role_permissions (id, role_id, permission_id)
                SELECT gen_random_uuid()::text, %s, p.id
                FROM permissions p
                WHERE p.name = ANY(%s)
                ON CONFLICT (role_id, permission_id) DO NOTHING
            """,
            params=(role_id, names),
            log_msg="PostgresAccessRepository: grant_permissions failed",
            log_extra={"role_id": role_id, "count": len(names)},
        )

    async def ping(self) -> bool:
        try:
            await fetchone(
                self._pool,
                query="SELECT 1",
                log_msg="PostgresAccessRepository: ping failed",
                log_extra={},
            )
            return True
        except Exception:
            return False
