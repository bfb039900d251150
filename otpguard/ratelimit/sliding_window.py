"""
Sliding Window Rate Limiters
============================
Sliding window counters backed by Redis sorted sets or process memory.

A request at time t is counted against every request from the same key in
[t - window, t]. Rejected requests are not recorded.
"""

import math
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict

from .models import RateLimitInfo

# Lua script for an atomic sliding window in Redis.
# Trim, count and conditional add run as one unit so concurrent
# requests from different processes cannot overshoot the limit.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)

local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, member)
    count = count + 1
    allowed = 1
end
redis.call('PEXPIRE', key, math.ceil(window * 1000))

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local reset_at = now + window
if #oldest > 0 then
    reset_at = tonumber(oldest[2]) + window
end

return {allowed, count, tostring(reset_at)}
"""


def _build_info(
    allowed: bool,
    count: int,
    limit: int,
    reset_at: float,
    now: float,
) -> RateLimitInfo:
    retry_after = None
    if not allowed:
        retry_after = max(1, math.ceil(reset_at - now))
    return RateLimitInfo(
        allowed=allowed,
        remaining=max(0, limit - count),
        limit=limit,
        reset_at=reset_at,
        retry_after=retry_after,
    )


class RedisSlidingWindow:
    """
    Sliding window rate limiter using Redis sorted sets.

    Each hit is a sorted-set member scored by its timestamp. The whole
    decision runs inside a Lua script, so it is atomic across processes.
    """

    def __init__(self, redis_client, clock: Callable[[], float] = time.time):
        """
        Args:
            redis_client: Async Redis client (redis.asyncio)
            clock: Source of the current Unix time
        """
        self.redis = redis_client
        self.clock = clock
        self._script = None

    def _ensure_script(self):
        """Register the Lua script with the client if needed."""
        if self._script is None:
            self._script = self.redis.register_script(SLIDING_WINDOW_SCRIPT)
        return self._script

    async def hit(self, key: str, limit: int, window: int) -> RateLimitInfo:
        """
        Count a request against the window for a key.

        Args:
            key: Rate limit key
            limit: Requests allowed per window
            window: Window size in seconds

        Returns:
            RateLimitInfo with decision
        """
        script = self._ensure_script()
        now = self.clock()
        member = f"{now}:{uuid.uuid4().hex}"

        allowed, count, reset_at = await script(
            keys=[key],
            args=[limit, window, now, member],
        )

        return _build_info(
            allowed=bool(int(allowed)),
            count=int(count),
            limit=limit,
            reset_at=float(reset_at),
            now=now,
        )


class InMemorySlidingWindow:
    """
    In-process sliding window rate limiter.

    For development and testing only. State is not shared between
    processes; use RedisSlidingWindow in production.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}

    async def hit(self, key: str, limit: int, window: int) -> RateLimitInfo:
        """Count a request against the window for a key."""
        now = self.clock()
        hits = self._hits.setdefault(key, deque())

        while hits and hits[0] <= now - window:
            hits.popleft()

        allowed = len(hits) < limit
        if allowed:
            hits.append(now)

        reset_at = hits[0] + window if hits else now + window
        return _build_info(
            allowed=allowed,
            count=len(hits),
            limit=limit,
            reset_at=reset_at,
            now=now,
        )

    def reset(self) -> None:
        """Forget every recorded hit."""
        self._hits.clear()
