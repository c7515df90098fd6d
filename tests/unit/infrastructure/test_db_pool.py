"""
Name: DB Pool Lifecycle Tests

Responsibilities:
  - Invalid pool bounds fail fast
  - A pool that cannot open surfaces as DatabaseError (and is closed)
  - ping() reports reachability without raising
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

pytestmark = pytest.mark.unit


class TestOpenPool:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("min_size,max_size", [(0, 5), (5, 2)])
    async def test_invalid_bounds(self, min_size, max_size):
        from eccb.infrastructure.db import open_pool

        with pytest.raises(ValueError):
            await open_pool("postgresql://x", min_size=min_size, max_size=max_size)

    @pytest.mark.asyncio
    async def test_open_failure_is_database_error(self):
        from eccb.crosscutting.exceptions import DatabaseError
        from eccb.infrastructure.db import open_pool

        fake_pool = MagicMock()
        fake_pool.open = AsyncMock(side_effect=OSError("connection refused"))
        fake_pool.close = AsyncMock()

        with patch(
            "eccb.infrastructure.db.pool.AsyncConnectionPool", return_value=fake_pool
        ):
            with pytest.raises(DatabaseError) as excinfo:
                await open_pool("postgresql://x", min_size=1, max_size=2)

        # R: the half-open pool is released.
        fake_pool.close.assert_awaited_once()
        assert isinstance(excinfo.value.original_error, OSError)


class TestPing:
    @pytest.mark.asyncio
    async def test_ping_true_and_false(self):
        from eccb.infrastructure.db import ping

        conn = MagicMock()
        conn.execute = AsyncMock()

        @asynccontextmanager
        async def _connection():
            yield conn

        pool = MagicMock()
        pool.connection = _connection
        assert await ping(pool) is True

        conn.execute = AsyncMock(side_effect=OSError("down"))
        assert await ping(pool) is False
