"""
Tests for tiered sliding window rate limiting.
"""

import pytest


class MutableTime:
    """Float clock for the rate limiter."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInMemorySlidingWindow:
    """Tests for the in-process sliding window."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        """First N requests pass, N+1 is rejected."""
        from otpguard.ratelimit import InMemorySlidingWindow

        clock = MutableTime()
        window = InMemorySlidingWindow(clock=clock)

        results = [await window.hit("k", 5, 900) for _ in range(5)]
        assert all(r.allowed for r in results)
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0]

        blocked = await window.hit("k", 5, 900)
        assert blocked.allowed is False
        assert blocked.remaining == 0
        assert blocked.reset_at > clock.now
        assert blocked.retry_after == 900

    @pytest.mark.asyncio
    async def test_window_slides(self):
        """Requests are admitted again once the oldest hit leaves the window."""
        from otpguard.ratelimit import InMemorySlidingWindow

        clock = MutableTime()
        window = InMemorySlidingWindow(clock=clock)

        for _ in range(3):
            await window.hit("k", 3, 60)
            clock.now += 10

        blocked = await window.hit("k", 3, 60)
        assert blocked.allowed is False

        clock.now = blocked.reset_at
        info = await window.hit("k", 3, 60)
        assert info.allowed is True

    @pytest.mark.asyncio
    async def test_rejected_requests_not_counted(self):
        """Hammering while blocked does not extend the block."""
        from otpguard.ratelimit import InMemorySlidingWindow

        clock = MutableTime()
        window = InMemorySlidingWindow(clock=clock)

        await window.hit("k", 1, 60)
        first = await window.hit("k", 1, 60)
        clock.now += 30
        second = await window.hit("k", 1, 60)

        assert first.reset_at == second.reset_at
        assert second.retry_after == 30

    @pytest.mark.asyncio
    async def test_keys_independent(self):
        """Different keys have separate budgets."""
        from otpguard.ratelimit import InMemorySlidingWindow

        window = InMemorySlidingWindow(clock=MutableTime())

        await window.hit("a", 1, 60)

        assert (await window.hit("a", 1, 60)).allowed is False
        assert (await window.hit("b", 1, 60)).allowed is True


class TestTieredRateLimiter:
    """Tests for tier budgets and backend failure handling."""

    @pytest.mark.asyncio
    async def test_auth_tier_budget(self):
        """Auth tier allows 5 requests per 15 minutes."""
        from otpguard.ratelimit import InMemorySlidingWindow, RateLimitTier, TieredRateLimiter

        clock = MutableTime()
        limiter = TieredRateLimiter(InMemorySlidingWindow(clock=clock), clock=clock)

        for _ in range(5):
            assert (await limiter.allow(RateLimitTier.AUTH, "1.2.3.4")).allowed

        info = await limiter.allow(RateLimitTier.AUTH, "1.2.3.4")
        assert info.allowed is False
        assert info.limit == 5
        assert info.reset_at == clock.now + 900

    @pytest.mark.asyncio
    async def test_tiers_have_separate_buckets(self):
        """Exhausting one tier leaves the others untouched."""
        from otpguard.ratelimit import InMemorySlidingWindow, RateLimitTier, TieredRateLimiter

        limiter = TieredRateLimiter(InMemorySlidingWindow(clock=MutableTime()))

        for _ in range(3):
            await limiter.allow(RateLimitTier.STRICT, "1.2.3.4")

        assert (await limiter.allow(RateLimitTier.STRICT, "1.2.3.4")).allowed is False
        assert (await limiter.allow(RateLimitTier.API, "1.2.3.4")).allowed is True

    def test_key_format(self):
        """Keys are namespaced by prefix and tier."""
        from otpguard.ratelimit import InMemorySlidingWindow, RateLimitTier, TieredRateLimiter

        limiter = TieredRateLimiter(InMemorySlidingWindow(), prefix="svc")

        assert limiter.get_key(RateLimitTier.AUTH, "1.2.3.4") == "svc:ratelimit:auth:1.2.3.4"

    @pytest.mark.asyncio
    async def test_fail_open(self):
        """Backend errors allow the request when failing open."""
        from unittest.mock import AsyncMock
        from otpguard.ratelimit import RateLimitResult, RateLimitTier, TieredRateLimiter

        backend = AsyncMock()
        backend.hit.side_effect = ConnectionError("redis down")
        limiter = TieredRateLimiter(backend, fail_open=True)

        info = await limiter.allow(RateLimitTier.AUTH, "1.2.3.4")

        assert info.allowed is True
        assert info.degraded is True
        assert info.result == RateLimitResult.DEGRADED

    @pytest.mark.asyncio
    async def test_fail_closed(self):
        """Backend errors raise when failing closed."""
        from unittest.mock import AsyncMock
        from otpguard.errors import RateLimiterUnavailableError
        from otpguard.ratelimit import RateLimitTier, TieredRateLimiter

        backend = AsyncMock()
        backend.hit.side_effect = ConnectionError("redis down")
        limiter = TieredRateLimiter(backend, fail_open=False)

        with pytest.raises(RateLimiterUnavailableError):
            await limiter.allow(RateLimitTier.AUTH, "1.2.3.4")


class TestRedisSlidingWindow:
    """Tests for the Redis backend's script invocation."""

    @pytest.mark.asyncio
    async def test_parses_script_result(self):
        """Script reply is turned into RateLimitInfo."""
        from unittest.mock import AsyncMock, MagicMock
        from otpguard.ratelimit import RedisSlidingWindow

        script = AsyncMock(return_value=[0, 5, "1700000900.0"])
        redis_client = MagicMock()
        redis_client.register_script.return_value = script

        window = RedisSlidingWindow(redis_client, clock=lambda: 1_700_000_000.0)
        info = await window.hit("key", 5, 900)

        assert info.allowed is False
        assert info.remaining == 0
        assert info.reset_at == 1_700_000_900.0
        assert info.retry_after == 900
        kwargs = script.call_args.kwargs
        assert kwargs["keys"] == ["key"]
        assert kwargs["args"][:3] == [5, 900, 1_700_000_000.0]

    @pytest.mark.asyncio
    async def test_script_registered_once(self):
        """The Lua script is registered on first use only."""
        from unittest.mock import AsyncMock, MagicMock
        from otpguard.ratelimit import RedisSlidingWindow

        redis_client = MagicMock()
        redis_client.register_script.return_value = AsyncMock(return_value=[1, 1, "100.0"])

        window = RedisSlidingWindow(redis_client, clock=lambda: 40.0)
        await window.hit("key", 5, 60)
        await window.hit("key", 5, 60)

        redis_client.register_script.assert_called_once()


class TestClientIdentifier:
    """Tests for identifier extraction and headers."""

    def test_first_trusted_header_wins(self):
        from otpguard.ratelimit import client_identifier

        headers = {"x-real-ip": "10.0.0.2", "cf-connecting-ip": "10.0.0.1"}

        assert client_identifier(headers) == "10.0.0.1"

    def test_forwarded_chain_uses_first_hop(self):
        from otpguard.ratelimit import client_identifier

        headers = {"x-forwarded-for": "203.0.113.9, 10.0.0.1, 10.0.0.2"}

        assert client_identifier(headers) == "203.0.113.9"

    def test_anonymous_fallback(self):
        """Callers without proxy headers share one bucket."""
        from otpguard.ratelimit import ANONYMOUS, client_identifier

        assert client_identifier({}) == ANONYMOUS

    def test_headers_when_blocked(self):
        """Blocked responses carry Retry-After and an ISO reset time."""
        from otpguard.ratelimit import RateLimitInfo, rate_limit_headers

        info = RateLimitInfo(
            allowed=False, remaining=0, limit=5, reset_at=0.0, retry_after=120,
        )
        headers = rate_limit_headers(info)

        assert headers["X-RateLimit-Limit"] == "5"
        assert headers["X-RateLimit-Remaining"] == "0"
        assert headers["X-RateLimit-Reset"] == "1970-01-01T00:00:00+00:00"
        assert headers["Retry-After"] == "120"

    def test_no_retry_after_when_allowed(self):
        from otpguard.ratelimit import RateLimitInfo, rate_limit_headers

        info = RateLimitInfo(allowed=True, remaining=4, limit=5, reset_at=0.0)

        assert "Retry-After" not in rate_limit_headers(info)
