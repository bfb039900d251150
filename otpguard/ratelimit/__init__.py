"""
Rate Limiting
=============
Tiered sliding window rate limiting with Redis and in-memory backends.
"""

from .models import (
    RateLimitTier,
    TierPolicy,
    DEFAULT_TIERS,
    RateLimitResult,
    RateLimitInfo,
)
from .sliding_window import RedisSlidingWindow, InMemorySlidingWindow, SLIDING_WINDOW_SCRIPT
from .limiter import TieredRateLimiter
from .identifier import client_identifier, rate_limit_headers, ANONYMOUS

__all__ = [
    # Models
    "RateLimitTier",
    "TierPolicy",
    "DEFAULT_TIERS",
    "RateLimitResult",
    "RateLimitInfo",
    # Backends
    "RedisSlidingWindow",
    "InMemorySlidingWindow",
    "SLIDING_WINDOW_SCRIPT",
    # Limiter
    "TieredRateLimiter",
    # Helpers
    "client_identifier",
    "rate_limit_headers",
    "ANONYMOUS",
]
