"""
Tiered Rate Limiter
===================
Per-tier request budgets on top of a sliding window backend.
"""

import time
from typing import Dict, Optional, Callable

import structlog

from otpguard.errors import RateLimiterUnavailableError
from .models import RateLimitInfo, RateLimitTier, TierPolicy, DEFAULT_TIERS

logger = structlog.get_logger(__name__)


class TieredRateLimiter:
    """
    Gate requests by tier and client identifier.

    When the backend is unreachable the limiter either fails open
    (allows the request and logs a warning) or fails closed (raises
    RateLimiterUnavailableError), depending on ``fail_open``.
    """

    def __init__(
        self,
        backend,
        tiers: Optional[Dict[RateLimitTier, TierPolicy]] = None,
        fail_open: bool = True,
        prefix: str = "otpguard",
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.tiers = dict(tiers or DEFAULT_TIERS)
        self.fail_open = fail_open
        self.prefix = prefix
        self.clock = clock

    def get_key(self, tier: RateLimitTier, identifier: str) -> str:
        """Generate the bucket key for a tier and client."""
        return f"{self.prefix}:ratelimit:{tier.value}:{identifier}"

    async def allow(self, tier: RateLimitTier, identifier: str) -> RateLimitInfo:
        """
        Check and count a request.

        Args:
            tier: Endpoint tier
            identifier: Client identifier (usually the client IP)

        Returns:
            RateLimitInfo with decision and quota
        """
        policy = self.tiers[tier]
        key = self.get_key(tier, identifier)

        try:
            info = await self.backend.hit(key, policy.limit, policy.window_seconds)
        except Exception as e:
            if not self.fail_open:
                logger.error(
                    "Rate limit backend unavailable, failing closed",
                    tier=tier.value,
                    error=str(e),
                )
                raise RateLimiterUnavailableError(str(e)) from e

            logger.warning(
                "Rate limit backend unavailable, failing open",
                tier=tier.value,
                error=str(e),
            )
            return RateLimitInfo(
                allowed=True,
                remaining=policy.limit,
                limit=policy.limit,
                reset_at=self.clock() + policy.window_seconds,
                degraded=True,
            )

        if not info.allowed:
            logger.info(
                "Rate limit exceeded",
                tier=tier.value,
                identifier=identifier,
                retry_after=info.retry_after,
            )
        return info
