# =============================================================================
# FILE: infrastructure/repositories/in_memory/audit_log.py
# =============================================================================
"""
In-Memory Audit Log Repository for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Callable, List, Optional
from uuid import uuid4

from ....domain.audit import (
    AuditEntry,
    AuditLogFilters,
    AuditLogStats,
    CountByKey,
    NewAuditEntry,
)


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle.lower() in haystack.lower()


def _matches(entry: AuditEntry, f: AuditLogFilters) -> bool:
    if f.user_id and entry.user_id != f.user_id:
        return False
    if f.user_name and not _contains(entry.user_name, f.user_name):
        return False
    if f.action and not _contains(entry.action, f.action):
        return False
    if f.entity_type and entry.entity_type != f.entity_type:
        return False
    if f.entity_id and entry.entity_id != f.entity_id:
        return False
    if f.date_from is not None and entry.timestamp < f.date_from:
        return False
    if f.date_to is not None and entry.timestamp > f.date_to:
        return False
    return True


def _top(values: list[str | None], top: int) -> list[CountByKey]:
    counts = Counter(v for v in values if v is not None)
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [CountByKey(key=k, count=n) for k, n in ranked[:top]]


class InMemoryAuditLogRepository:
    """
    In-memory implementation of AuditLogRepository.

    Orden de listados: timestamp DESC, id DESC (igual que PostgreSQL).
    """

    def __init__(
        self, *, now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ) -> None:
        self._now = now
        self._entries: List[AuditEntry] = []

    @property
    def entries(self) -> List[AuditEntry]:
        return list(self._entries)

    def _sorted(self, entries: list[AuditEntry]) -> list[AuditEntry]:
        return sorted(entries, key=lambda e: (e.timestamp, e.id), reverse=True)

    async def create_entry(self, entry: NewAuditEntry) -> AuditEntry:
        stored = AuditEntry(
            id=str(uuid4()),
            action=entry.action,
            entity_type=entry.entity_type,
            timestamp=self._now(),
            entity_id=entry.entity_id,
            user_id=entry.user_id,
            user_name=entry.user_name,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            old_values=entry.old_values,
            new_values=entry.new_values,
        )
        self._entries.append(stored)
        return stored

    async def add(self, entry: AuditEntry) -> None:
        """Inserta una entrada ya formada (fixtures de test)."""
        self._entries.append(entry)

    async def list_entries(
        self, filters: AuditLogFilters, *, offset: int, limit: int
    ) -> tuple[List[AuditEntry], int]:
        matching = self._sorted([e for e in self._entries if _matches(e, filters)])
        if limit <= 0:
            return [], len(matching)
        start = max(0, offset)
        return matching[start : start + limit], len(matching)

    async def get_entry(self, entry_id: str) -> Optional[AuditEntry]:
        return next((e for e in self._entries if e.id == entry_id), None)

    async def get_stats(self, since: datetime, *, top: int = 10) -> AuditLogStats:
        recent = [e for e in self._entries if e.timestamp >= since]
        return AuditLogStats(
            total_logs=len(recent),
            by_action=_top([e.action for e in recent], top),
            by_entity_type=_top([e.entity_type for e in recent], top),
            by_user=_top([e.user_name for e in recent], top),
        )

    async def distinct_actions(self) -> List[str]:
        return sorted({e.action for e in self._entries})

    async def distinct_entity_types(self) -> List[str]:
        return sorted({e.entity_type for e in self._entries})

    async def entity_history(
        self, entity_type: str, entity_id: str, *, limit: int
    ) -> List[AuditEntry]:
        matching = [
            e
            for e in self._entries
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return self._sorted(matching)[:limit]
