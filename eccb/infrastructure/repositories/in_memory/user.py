# =============================================================================
# FILE: infrastructure/repositories/in_memory/user.py
# =============================================================================
"""
In-Memory User Repository for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import uuid4

from ....domain.users import User


class InMemoryUserRepository:
    def __init__(self) -> None:
        self._users: Dict[str, User] = {}

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        normalized = (email or "").strip().lower()
        return next((u for u in self._users.values() if u.email == normalized), None)

    async def create_user(
        self,
        *,
        email: str,
        name: str,
        password_hash: str,
        is_active: bool = True,
        user_id: Optional[str] = None,
    ) -> User:
        user = User(
            id=user_id or str(uuid4()),
            email=(email or "").strip().lower(),
            name=name,
            password_hash=password_hash,
            is_active=is_active,
            created_at=datetime.now(timezone.utc),
        )
        self._users[user.id] = user
        return user
