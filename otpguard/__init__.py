"""
OTPGuard
========
Email one-time code verification: issuance, lockout, tiered rate limiting
and a security audit trail.
"""

__version__ = "0.1.0"

# Configuration
from otpguard.config import OTPSettings

# Errors
from otpguard.errors import (
    OTPErrorKind,
    OTPGuardError,
    StoreUnavailableError,
    DirectoryUnavailableError,
    RateLimiterUnavailableError,
    NotifierError,
)

# Rate Limiting
from otpguard.ratelimit import (
    RateLimitTier,
    TierPolicy,
    RateLimitInfo,
    RateLimitResult,
    RedisSlidingWindow,
    InMemorySlidingWindow,
    TieredRateLimiter,
    client_identifier,
    rate_limit_headers,
)

# Audit
from otpguard.audit import (
    AuditEventType,
    ActorType,
    AuditEvent,
    RequestContext,
    AuditLogger,
    SqlAuditSink,
    LogAuditSink,
    MemoryAuditSink,
)

# OTP
from otpguard.otp import (
    OTPChallenge,
    IssueResult,
    VerifyResult,
    CodeHasher,
    generate_otp,
    ChallengeStore,
    LockoutEngine,
    SubjectDirectory,
    InMemorySubjectDirectory,
    OTPIssuanceService,
    OTPVerificationService,
)

# Delivery
from otpguard.notify import Notifier, ResendNotifier, ConsoleNotifier

__all__ = [
    # Configuration
    "OTPSettings",
    # Errors
    "OTPErrorKind",
    "OTPGuardError",
    "StoreUnavailableError",
    "DirectoryUnavailableError",
    "RateLimiterUnavailableError",
    "NotifierError",
    # Rate Limiting
    "RateLimitTier",
    "TierPolicy",
    "RateLimitInfo",
    "RateLimitResult",
    "RedisSlidingWindow",
    "InMemorySlidingWindow",
    "TieredRateLimiter",
    "client_identifier",
    "rate_limit_headers",
    # Audit
    "AuditEventType",
    "ActorType",
    "AuditEvent",
    "RequestContext",
    "AuditLogger",
    "SqlAuditSink",
    "LogAuditSink",
    "MemoryAuditSink",
    # OTP
    "OTPChallenge",
    "IssueResult",
    "VerifyResult",
    "CodeHasher",
    "generate_otp",
    "ChallengeStore",
    "LockoutEngine",
    "SubjectDirectory",
    "InMemorySubjectDirectory",
    "OTPIssuanceService",
    "OTPVerificationService",
    # Delivery
    "Notifier",
    "ResendNotifier",
    "ConsoleNotifier",
]
