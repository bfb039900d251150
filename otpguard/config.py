"""
OTPGuard Configuration
======================
Settings for OTP issuance, lockout, rate limiting and delivery.

The settings object is built once at startup (usually with
``OTPSettings.from_env()``) and passed explicitly to every service.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Tuple

from otpguard.ratelimit.models import RateLimitTier, TierPolicy, DEFAULT_TIERS


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OTPSettings:
    """Configuration for the email verification core."""
    code_length: int = 6
    expiry_seconds: int = 600         # 10 minutes
    max_attempts: int = 5
    lock_seconds: int = 900           # 15 minutes
    notifier_timeout: float = 10.0

    # Availability over strictness when the limiter store is down
    rate_limit_fail_open: bool = True
    tiers: Dict[RateLimitTier, TierPolicy] = field(
        default_factory=lambda: dict(DEFAULT_TIERS)
    )
    trusted_ip_headers: Tuple[str, ...] = (
        "cf-connecting-ip",
        "x-real-ip",
        "x-forwarded-for",
    )

    database_url: str = "sqlite+aiosqlite:///./otpguard.db"
    redis_url: str = "redis://localhost:6379/0"
    resend_api_key: str = ""
    from_email: str = "Verification <noreply@example.com>"

    service_name: str = "otpguard"
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> "OTPSettings":
        """Build settings from environment variables."""
        defaults = cls()
        return cls(
            code_length=int(os.environ.get("OTP_CODE_LENGTH", defaults.code_length)),
            expiry_seconds=int(os.environ.get("OTP_EXPIRY_SECONDS", defaults.expiry_seconds)),
            max_attempts=int(os.environ.get("OTP_MAX_ATTEMPTS", defaults.max_attempts)),
            lock_seconds=int(os.environ.get("OTP_LOCK_SECONDS", defaults.lock_seconds)),
            notifier_timeout=float(
                os.environ.get("OTP_NOTIFIER_TIMEOUT", defaults.notifier_timeout)
            ),
            rate_limit_fail_open=_env_bool(
                "RATE_LIMIT_FAIL_OPEN", defaults.rate_limit_fail_open
            ),
            database_url=os.environ.get("DATABASE_URL", defaults.database_url),
            redis_url=os.environ.get("REDIS_URL", defaults.redis_url),
            resend_api_key=os.environ.get("RESEND_API_KEY", defaults.resend_api_key),
            from_email=os.environ.get("EMAIL_FROM", defaults.from_email),
            service_name=os.environ.get("SERVICE_NAME", defaults.service_name),
            log_level=os.environ.get("LOG_LEVEL", defaults.log_level),
            log_json=_env_bool("LOG_JSON", defaults.log_json),
        )

    def policy(self, tier: RateLimitTier) -> TierPolicy:
        """Get the request budget for a tier."""
        return self.tiers[tier]
