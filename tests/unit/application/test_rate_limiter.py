"""
Name: Rate Limiter Tests

Responsibilities:
  - Verify fixed-window counting (fresh key, limit+1, window elapse)
  - Verify fail-open on counter store errors
  - Verify presets and input validation
"""

from unittest.mock import AsyncMock

import pytest

pytestmark = pytest.mark.unit


def _limiter(clock):
    from eccb.application.rate_limiting import RateLimiter
    from eccb.infrastructure.counters import InMemoryCounterStore

    store = InMemoryCounterStore(clock=clock)
    return RateLimiter(store, clock=clock), store


class TestRateLimiterCheck:
    @pytest.mark.asyncio
    async def test_fresh_key_is_allowed_with_limit_minus_one_remaining(self, clock):
        limiter, _ = _limiter(clock)

        result = await limiter.check("user:1", limit=5, window_seconds=60)

        assert result.allowed is True
        assert result.limit == 5
        assert result.remaining == 4
        assert result.reset == int(clock()) + 60

    @pytest.mark.asyncio
    async def test_only_first_limit_checks_are_allowed(self, clock):
        limiter, _ = _limiter(clock)

        results = [await limiter.check("ip:1.2.3.4", 3, 60) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_denied_check_does_not_consume_a_slot(self, clock):
        limiter, store = _limiter(clock)
        for _ in range(3):
            await limiter.check("k", 2, 60)

        assert await store.get("rate-limit:k") == "2"

    @pytest.mark.asyncio
    async def test_key_behaves_as_fresh_after_window_elapses(self, clock):
        limiter, _ = _limiter(clock)
        for _ in range(2):
            await limiter.check("k", 2, 60)
        assert (await limiter.check("k", 2, 60)).allowed is False

        clock.advance(61)
        result = await limiter.check("k", 2, 60)

        assert result.allowed is True
        assert result.remaining == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        limiter, _ = _limiter(clock)
        await limiter.check("a", 1, 60)

        assert (await limiter.check("a", 1, 60)).allowed is False
        assert (await limiter.check("b", 1, 60)).allowed is True

    @pytest.mark.asyncio
    async def test_store_error_fails_open(self, clock):
        from eccb.application.rate_limiting import RateLimiter
        from eccb.crosscutting.exceptions import CounterStoreError

        store = AsyncMock()
        store.consume.side_effect = CounterStoreError("redis down")
        limiter = RateLimiter(store, clock=clock)

        result = await limiter.check("k", 1, 60)

        assert result.allowed is True
        assert result.remaining == 1

    @pytest.mark.asyncio
    async def test_unexpected_store_error_fails_open(self, clock):
        from eccb.application.rate_limiting import RateLimiter

        store = AsyncMock()
        store.consume.side_effect = ConnectionError("boom")
        limiter = RateLimiter(store, clock=clock)

        assert (await limiter.check("k", 1, 60)).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_checks_never_exceed_limit(self, clock):
        import asyncio

        limiter, store = _limiter(clock)

        results = await asyncio.gather(
            *(limiter.check("ip:9.9.9.9", 5, 60) for _ in range(20))
        )

        assert sum(r.allowed for r in results) == 5
        assert await store.get("rate-limit:ip:9.9.9.9") == "5"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "key,limit,window", [("", 5, 60), ("k", 0, 60), ("k", 5, 0)]
    )
    async def test_invalid_arguments_raise_value_error(self, clock, key, limit, window):
        limiter, _ = _limiter(clock)

        with pytest.raises(ValueError):
            await limiter.check(key, limit, window)


class TestRateLimitResult:
    def test_retry_after_is_seconds_until_reset(self):
        from eccb.application.rate_limiting import RateLimitResult

        result = RateLimitResult(allowed=False, limit=5, remaining=0, reset=1_000)

        assert result.retry_after(940) == 60
        assert result.retry_after(999.2) == 1

    def test_retry_after_never_negative(self):
        from eccb.application.rate_limiting import RateLimitResult

        result = RateLimitResult(allowed=False, limit=5, remaining=0, reset=1_000)

        assert result.retry_after(1_010) == 0


class TestPresets:
    def test_known_presets(self):
        from eccb.application.rate_limiting import get_preset

        assert get_preset("sign_in").limit == 5
        assert get_preset("sign_in").window_seconds == 60
        assert get_preset("password_reset").window_seconds == 3600
        assert get_preset("admin_action").limit == 20

    def test_unknown_preset_raises(self):
        from eccb.application.rate_limiting import get_preset

        with pytest.raises(ValueError):
            get_preset("nope")

    @pytest.mark.asyncio
    async def test_check_preset_uses_preset_limit(self, clock):
        limiter, _ = _limiter(clock)

        results = [await limiter.check_preset("1.1.1.1:sign-in", "sign_in") for _ in range(6)]

        assert sum(r.allowed for r in results) == 5
