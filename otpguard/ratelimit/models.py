"""
Rate Limit Models
=================
Tiers, policies and decision results for rate limiting.
"""

from typing import Optional
from dataclasses import dataclass
from enum import Enum


class RateLimitTier(str, Enum):
    """Endpoint tiers, each with its own bucket namespace."""
    AUTH = "auth"
    API = "api"
    PAYMENT = "payment"
    STRICT = "strict"


@dataclass(frozen=True)
class TierPolicy:
    """Request budget for one tier."""
    limit: int
    window_seconds: int


DEFAULT_TIERS = {
    RateLimitTier.AUTH: TierPolicy(limit=5, window_seconds=15 * 60),
    RateLimitTier.API: TierPolicy(limit=30, window_seconds=60),
    RateLimitTier.PAYMENT: TierPolicy(limit=10, window_seconds=60),
    RateLimitTier.STRICT: TierPolicy(limit=3, window_seconds=60),
}


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    DEGRADED = "degraded"


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # Unix timestamp
    retry_after: Optional[int] = None  # Seconds until retry allowed
    degraded: bool = False  # Backend unavailable, decision not enforced

    @property
    def result(self) -> RateLimitResult:
        if self.degraded:
            return RateLimitResult.DEGRADED
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED
