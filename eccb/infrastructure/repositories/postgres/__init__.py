"""
PostgreSQL Repository Implementations.

Async implementations on psycopg 3 (AsyncConnectionPool injected by the container).
"""

from .access import PostgresAccessRepository
from .audit_log import PostgresAuditLogRepository
from .user import PostgresUserRepository

__all__ = [
    "PostgresAccessRepository",
    "PostgresAuditLogRepository",
    "PostgresUserRepository",
]
