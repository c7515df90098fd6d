"""
Name: Counter Store Adapter Tests

Responsibilities:
  - In-memory store: first increment sets the expiry, TTL semantics (-2/-1)
  - Redis store: Lua increment call shape, RedisError -> CounterStoreError
  - In-memory permission cache honours TTL
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

pytestmark = pytest.mark.unit


class TestInMemoryCounterStore:
    @pytest.mark.asyncio
    async def test_first_increment_sets_window_and_later_ones_keep_it(self, clock):
        from eccb.infrastructure.counters import InMemoryCounterStore

        store = InMemoryCounterStore(clock=clock)

        assert await store.increment("k", 60) == 1
        clock.advance(30)
        assert await store.increment("k", 60) == 2
        assert await store.ttl("k") == 30

        clock.advance(30)
        assert await store.get("k") is None
        assert await store.ttl("k") == -2

    @pytest.mark.asyncio
    async def test_consume_stops_at_limit_without_incrementing(self, clock):
        from eccb.infrastructure.counters import InMemoryCounterStore

        store = InMemoryCounterStore(clock=clock)

        assert await store.consume("k", 2, 60) == (True, 1)
        assert await store.consume("k", 2, 60) == (True, 2)
        assert await store.consume("k", 2, 60) == (False, 2)
        assert await store.get("k") == "2"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, clock):
        from eccb.infrastructure.counters import InMemoryCounterStore

        store = InMemoryCounterStore(clock=clock)
        await store.increment("a", 60)
        await store.increment("b", 60)

        await store.delete("a")
        assert await store.get("a") is None
        store.clear()
        assert await store.get("b") is None


class TestRedisCounterStore:
    def _store(self):
        from eccb.infrastructure.counters import RedisCounterStore

        client = MagicMock()
        script = AsyncMock(return_value=3)
        client.register_script.return_value = script
        client.get = AsyncMock(return_value="2")
        client.ttl = AsyncMock(return_value=42)
        client.delete = AsyncMock()
        client.ping = AsyncMock(return_value=True)
        return RedisCounterStore(client), client, script

    @pytest.mark.asyncio
    async def test_increment_runs_script_with_window(self):
        store, _, script = self._store()

        assert await store.increment("rate-limit:k", 60) == 3
        script.assert_awaited_once_with(keys=["rate-limit:k"], args=[60])

    @pytest.mark.asyncio
    async def test_consume_runs_limit_script(self):
        store, _, script = self._store()
        script.return_value = [0, 5]

        assert await store.consume("rate-limit:k", 5, 60) == (False, 5)
        script.assert_awaited_once_with(keys=["rate-limit:k"], args=[5, 60])

    @pytest.mark.asyncio
    async def test_consume_error_is_wrapped(self):
        from redis.exceptions import ConnectionError as RedisConnectionError

        from eccb.crosscutting.exceptions import CounterStoreError

        store, _, script = self._store()
        script.side_effect = RedisConnectionError("refused")

        with pytest.raises(CounterStoreError):
            await store.consume("rate-limit:k", 5, 60)

    @pytest.mark.asyncio
    async def test_reads_delegate_to_client(self):
        store, client, _ = self._store()

        assert await store.get("k") == "2"
        assert await store.ttl("k") == 42
        await store.delete("k")
        client.delete.assert_awaited_once_with("k")
        assert await store.ping() is True

    @pytest.mark.asyncio
    async def test_redis_error_is_wrapped(self):
        from redis.exceptions import ConnectionError as RedisConnectionError

        from eccb.crosscutting.exceptions import CounterStoreError

        store, client, _ = self._store()
        client.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(CounterStoreError) as excinfo:
            await store.get("k")

        assert isinstance(excinfo.value.original_error, RedisConnectionError)

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self):
        from redis.exceptions import ConnectionError as RedisConnectionError

        store, client, _ = self._store()
        client.ping.side_effect = RedisConnectionError("refused")

        assert await store.ping() is False


class TestInMemoryPermissionCache:
    @pytest.mark.asyncio
    async def test_entries_expire(self, clock):
        from eccb.infrastructure.permission_cache import InMemoryPermissionCache

        cache = InMemoryPermissionCache(clock=clock)
        await cache.setex("permissions:u1", 300, '["p1"]')

        assert await cache.get("permissions:u1") == '["p1"]'
        clock.advance(301)
        assert await cache.get("permissions:u1") is None
