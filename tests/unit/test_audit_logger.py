"""
Name: Audit Logger Tests

Responsibilities:
  - record() returns immediately and persists one entry in the background
  - Actor comes from the request session (or explicit override)
  - old/new values are stored as JSON strings
  - A failing store never reaches the caller
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from starlette.requests import Request

from conftest import bearer_for, seed_user

pytestmark = pytest.mark.unit


def _request(headers=None):
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/admin/users/x/roles",
            "query_string": b"",
            "headers": [
                (k.lower().encode(), v.encode()) for k, v in (headers or {}).items()
            ],
            "client": ("192.168.1.20", 1234),
        }
    )


def _audit_logger(container, request, repository=None):
    from eccb.audit import AuditLogger

    return AuditLogger(
        request,
        container.sessions,
        repository or container.audit_repository,
        container.tasks,
    )


class TestAuditLogger:
    @pytest.mark.asyncio
    async def test_record_persists_entry_with_session_actor(self, container):
        user = await seed_user(container, name="Admin", email="admin@x.com")
        headers = {**bearer_for(container, user), "User-Agent": "pytest-agent"}
        audit = _audit_logger(container, _request(headers))

        audit.record(
            "role.assign",
            "User",
            entity_id="u-9",
            new_values={"role_id": "r1", "role_name": "LIBRARIAN"},
        )
        await container.tasks.drain(timeout=1)

        [entry] = container.audit_repository.entries
        assert entry.action == "role.assign"
        assert entry.entity_type == "User"
        assert entry.entity_id == "u-9"
        assert entry.user_id == user.id
        assert entry.user_name == "Admin"
        assert entry.ip_address == "192.168.1.20"
        assert entry.user_agent == "pytest-agent"
        assert entry.old_values is None
        assert json.loads(entry.new_values) == {"role_id": "r1", "role_name": "LIBRARIAN"}

    @pytest.mark.asyncio
    async def test_anonymous_request_is_recorded_without_actor(self, container):
        audit = _audit_logger(container, _request())

        audit.record("contact.submit", "ContactForm")
        await container.tasks.drain(timeout=1)

        [entry] = container.audit_repository.entries
        assert entry.user_id is None
        assert entry.user_name is None

    @pytest.mark.asyncio
    async def test_explicit_actor_overrides_session(self, container):
        from eccb.identity.session import SessionUser

        audit = _audit_logger(container, _request())

        audit.record(
            "auth.login",
            "User",
            entity_id="u1",
            actor=SessionUser(id="u1", name="Ana", email="ana@x.com"),
        )
        await container.tasks.drain(timeout=1)

        [entry] = container.audit_repository.entries
        assert entry.user_id == "u1"
        assert entry.user_name == "Ana"

    @pytest.mark.asyncio
    async def test_non_json_values_are_stringified(self, container):
        from datetime import datetime, timezone

        audit = _audit_logger(container, _request())
        when = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

        audit.record("event.update", "Event", old_values={"starts_at": when})
        await container.tasks.drain(timeout=1)

        [entry] = container.audit_repository.entries
        assert json.loads(entry.old_values) == {"starts_at": "2025-03-01 12:00:00+00:00"}

    @pytest.mark.asyncio
    async def test_store_failure_never_raises_to_caller(self, container):
        repository = AsyncMock()
        repository.create_entry.side_effect = RuntimeError("db down")
        audit = _audit_logger(container, _request(), repository=repository)

        with patch("eccb.crosscutting.tasks.record_noncritical_task_failure") as failed:
            audit.record("music.create", "MusicPiece", entity_id="m1")
            pending = await container.tasks.drain(timeout=1)
            await asyncio.sleep(0)

        assert pending == 0
        repository.create_entry.assert_awaited_once()
        failed.assert_called_once_with("audit:music.create")
