"""
===============================================================================
TARJETA CRC — domain/users.py
===============================================================================

Módulo:
    Modelo de Usuario

Responsabilidades:
    - Definir el registro de usuario usado por sign-in y por el Session Accessor.

Colaboradores:
    - domain.repositories.UserRepository
    - identity.session: token -> user
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class User:
    """Registro de usuario (la identidad es un id opaco)."""

    id: str
    email: str
    name: str
    password_hash: str
    is_active: bool = True
    created_at: datetime | None = None
