"""
In-memory repository implementations (tests / local development).
"""

from .access import InMemoryAccessRepository
from .audit_log import InMemoryAuditLogRepository
from .user import InMemoryUserRepository

__all__ = [
    "InMemoryAccessRepository",
    "InMemoryAuditLogRepository",
    "InMemoryUserRepository",
]
