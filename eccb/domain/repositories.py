"""
CRC — domain/repositories.py

Name
- Domain Repository Interfaces (Protocols)

Responsibilities
- Define persistence contracts for the access layer (ports).
- Keep application/identity code independent from infrastructure (PostgreSQL, in-memory).
- Enable dependency inversion and straightforward unit testing (mock/stub repositories).

Collaborators
- domain.access: Role, PermissionRecord, RoleAssignment
- domain.audit: NewAuditEntry, AuditEntry, AuditLogFilters, AuditLogStats
- domain.users: User
- infrastructure.repositories: postgres / in_memory implementations

Constraints
- Pure interfaces only: no side effects, no infrastructure imports, no SQL.
- All methods are async; implementations raise DatabaseError on storage failures.
- "now" is passed in explicitly so expiry rules are testable.

Notes
- We use typing.Protocol for structural subtyping ("duck typing").
- Outputs are concrete lists / frozensets for predictable iteration/serialization.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from .access import PermissionRecord, Role, RoleAssignment
from .audit import AuditEntry, AuditLogFilters, AuditLogStats, NewAuditEntry
from .users import User


class UserRepository(Protocol):
    """R: Interface for user lookup (identity collaborator)."""

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """R: Email is matched after trim/lower normalization."""
        ...

    async def create_user(
        self,
        *,
        email: str,
        name: str,
        password_hash: str,
        is_active: bool = True,
    ) -> User:
        ...


class AccessRepository(Protocol):
    """
    R: Interface for roles, permissions and user-role assignments.

    Implementations must provide:
      - Effective permission/role lookups honoring expires_at
      - Role assignment lifecycle (assign / remove)
      - Idempotent catalog upserts (seed)
    """

    async def get_user_permission_names(
        self, user_id: str, *, now: datetime
    ) -> frozenset[str]:
        """R: Union of permission tokens of all non-expired roles of the user."""
        ...

    async def get_user_role_names(
        self, user_id: str, *, now: datetime
    ) -> frozenset[str]:
        ...

    async def list_roles(self) -> List[Role]:
        ...

    async def get_role(self, role_id: str) -> Optional[Role]:
        ...

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        ...

    async def list_role_permissions(self, role_id: str) -> List[PermissionRecord]:
        ...

    async def get_assignment(
        self, user_id: str, role_id: str
    ) -> Optional[RoleAssignment]:
        ...

    async def create_assignment(
        self,
        *,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str],
        expires_at: Optional[datetime] = None,
    ) -> RoleAssignment:
        ...

    async def delete_assignment(self, user_id: str, role_id: str) -> bool:
        """R: Returns False when there was nothing to delete."""
        ...

    async def upsert_role(
        self,
        *,
        name: str,
        display_name: str,
        description: Optional[str],
        type: Optional[str],
    ) -> Role:
        ...

    async def upsert_permission(
        self,
        *,
        name: str,
        resource: str,
        action: Optional[str],
        scope: Optional[str],
    ) -> PermissionRecord:
        ...

    async def grant_permissions(
        self, role_id: str, permission_names: Iterable[str]
    ) -> int:
        """R: Links permissions to a role; existing links are kept. Returns new links."""
        ...

    async def ping(self) -> bool:
        ...


class AuditLogRepository(Protocol):
    """R: Interface for the append-only audit log."""

    async def create_entry(self, entry: NewAuditEntry) -> AuditEntry:
        ...

    async def list_entries(
        self, filters: AuditLogFilters, *, offset: int, limit: int
    ) -> tuple[List[AuditEntry], int]:
        """R: Returns (page ordered by timestamp desc, total matching)."""
        ...

    async def get_entry(self, entry_id: str) -> Optional[AuditEntry]:
        ...

    async def get_stats(self, since: datetime, *, top: int = 10) -> AuditLogStats:
        ...

    async def distinct_actions(self) -> List[str]:
        ...

    async def distinct_entity_types(self) -> List[str]:
        ...

    async def entity_history(
        self, entity_type: str, entity_id: str, *, limit: int
    ) -> List[AuditEntry]:
        ...
