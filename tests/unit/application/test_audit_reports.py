"""
Name: Audit Reports Service Tests

Responsibilities:
  - Pagination clamping and total_pages
  - date_to covers the whole end day
  - Stats window starts at midnight N days ago
  - CSV export format (plain header, quoted cells, doubled quotes)
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

pytestmark = pytest.mark.unit

NOW = datetime(2025, 6, 15, 18, 30, tzinfo=timezone.utc)


def _entry(i, **overrides):
    from eccb.domain.audit import AuditEntry

    data = dict(
        id=f"log-{i}",
        action="music.create",
        entity_type="MusicPiece",
        timestamp=datetime(2025, 6, 10, 9, i, 5, tzinfo=timezone.utc),
        entity_id=f"m{i}",
        user_id="u1",
        user_name="Ana",
        ip_address="10.0.0.1",
    )
    data.update(overrides)
    return AuditEntry(**data)


async def _service(entries=()):
    from eccb.application.audit_reports import AuditReportService
    from eccb.infrastructure.repositories.in_memory import InMemoryAuditLogRepository

    repo = InMemoryAuditLogRepository(now=lambda: NOW)
    for e in entries:
        await repo.add(e)
    return AuditReportService(repo, now=lambda: NOW), repo


class TestListLogs:
    @pytest.mark.asyncio
    async def test_pagination_and_total_pages(self):
        service, _ = await _service([_entry(i) for i in range(5)])

        page = await service.list_logs(page=2, limit=2)

        assert page.total == 5
        assert page.total_pages == 3
        assert [e.id for e in page.logs] == ["log-2", "log-1"]

    @pytest.mark.asyncio
    async def test_limit_is_clamped_to_max(self):
        service, _ = await _service()

        page = await service.list_logs(limit=500)

        assert page.limit == 100

    @pytest.mark.asyncio
    async def test_invalid_page_raises(self):
        service, _ = await _service()

        with pytest.raises(ValueError):
            await service.list_logs(page=0)

    @pytest.mark.asyncio
    async def test_date_to_includes_the_whole_day(self):
        from eccb.domain.audit import AuditLogFilters

        service, _ = await _service(
            [
                _entry(1, timestamp=datetime(2025, 6, 10, 23, 59, 59, tzinfo=timezone.utc)),
                _entry(2, timestamp=datetime(2025, 6, 11, 0, 0, 1, tzinfo=timezone.utc)),
            ]
        )

        page = await service.list_logs(
            AuditLogFilters(date_to=datetime(2025, 6, 10, tzinfo=timezone.utc))
        )

        assert [e.id for e in page.logs] == ["log-1"]

    @pytest.mark.asyncio
    async def test_text_filters_are_contains_and_case_insensitive(self):
        from eccb.domain.audit import AuditLogFilters

        service, _ = await _service(
            [_entry(1, action="role.assign"), _entry(2, action="music.delete")]
        )

        page = await service.list_logs(AuditLogFilters(action="ROLE"))

        assert [e.id for e in page.logs] == ["log-1"]


class TestStats:
    @pytest.mark.asyncio
    async def test_window_starts_at_midnight(self):
        from eccb.application.audit_reports import AuditReportService
        from eccb.domain.audit import AuditLogStats

        repo = AsyncMock()
        repo.get_stats.return_value = AuditLogStats(total_logs=0)
        service = AuditReportService(repo, now=lambda: NOW)

        await service.get_stats(days=7)

        repo.get_stats.assert_awaited_once_with(
            datetime(2025, 6, 8, tzinfo=timezone.utc), top=10
        )

    @pytest.mark.asyncio
    async def test_top_counts(self):
        service, _ = await _service(
            [
                _entry(1, action="a"),
                _entry(2, action="a"),
                _entry(3, action="b", user_name="Beto"),
            ]
        )

        stats = await service.get_stats(days=30)

        assert stats.total_logs == 3
        assert stats.by_action[0].key == "a"
        assert stats.by_action[0].count == 2
        assert {c.key for c in stats.by_user} == {"Ana", "Beto"}


class TestExport:
    def test_csv_format(self):
        from eccb.application.audit_reports import entries_to_csv

        csv_text = entries_to_csv(
            [_entry(1, new_values='{"title": "Bolero"}', entity_id=None)]
        )
        header, row = csv_text.split("\n")

        assert header == (
            "ID,Timestamp,User ID,User Name,IP Address,Action,Entity Type,"
            "Entity ID,Old Values,New Values"
        )
        assert row == (
            '"log-1","2025-06-10 09:01:05","u1","Ana","10.0.0.1","music.create",'
            '"MusicPiece","","","{""title"": ""Bolero""}"'
        )

    def test_csv_without_rows_is_header_only(self):
        from eccb.application.audit_reports import entries_to_csv

        assert entries_to_csv([]).count("\n") == 0

    @pytest.mark.asyncio
    async def test_export_ignores_page_size_cap(self):
        service, _ = await _service([_entry(i % 60, id=f"id-{i}") for i in range(150)])

        csv_text = await service.export_csv()
        data = await service.export_json()

        assert csv_text.count("\n") == 150
        assert len(data) == 150
        assert isinstance(data[0]["timestamp"], str)
