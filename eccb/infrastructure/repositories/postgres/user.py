"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/user.py
============================================================
Class: PostgresUserRepository

Responsibilities:
  - Cargar usuarios para sign-in (por email) y para el Session Accessor (por id).
  - Crear usuarios (seed de admin / tests de integración).
  - Mapear filas crudas -> entidad de dominio `User`.

Collaborators:
  - psycopg_pool.AsyncConnectionPool (inyectado)
  - domain.users.User
  - postgres._sql helpers (DatabaseError + logging)

Constraints / Notes:
  - Retorna None cuando no existe el recurso (no exception por "not found").
  - El email se persiste y se busca normalizado (trim + lower).
============================================================
"""

from __future__ import annotations

from typing import Optional
from uuid import uuid4

from psycopg_pool import AsyncConnectionPool

from ....domain.users import User
from ._sql import fetchone

# R: Lista explícita de columnas para mantener el contrato estable con migraciones.
_USER_COLUMNS = "id, email, name, password_hash, is_active, created_at"


def _row_to_user(row: tuple) -> User:
    return User(
        id=row[0],
        email=row[1],
        name=row[2],
        password_hash=row[3],
        is_active=row[4],
        created_at=row[5],
    )


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class PostgresUserRepository:
    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        row = await fetchone(
            self._pool,
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            params=(user_id,),
            log_msg="PostgresUserRepository: get_user_by_id failed",
            log_extra={"user_id": user_id},
        )
        return _row_to_user(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        normalized = _normalize_email(email)
        if not normalized:
            return None
        row = await fetchone(
            self._pool,
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
            params=(normalized,),
            log_msg="PostgresUserRepository: get_user_by_email failed",
            log_extra={"email": normalized},
        )
        return _row_to_user(row) if row else None

    async def create_user(
        self,
        *,
        email: str,
        name: str,
        password_hash: str,
        is_active: bool = True,
    ) -> User:
        row = await fetchone(
            self._pool,
            query=f"""
                INSERT INTO users (id, email, name, password_hash, is_active)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_USER_COLUMNS}
            """,
            params=(str(uuid4()), _normalize_email(email), name, password_hash, is_active),
            log_msg="PostgresUserRepository: create_user failed",
            log_extra={"email": _normalize_email(email)},
        )
        return _row_to_user(row)
