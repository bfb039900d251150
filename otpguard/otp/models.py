"""
OTP Models
==========
Data models and results for issuance, lockout and verification.
"""

from datetime import datetime
from typing import Optional
from dataclasses import dataclass

from otpguard.errors import OTPErrorKind


@dataclass
class OTPChallenge:
    """An issued verification code for one (subject_id, email) pair."""
    id: str
    subject_id: str
    email: str
    code_hash: str
    created_at: datetime
    expires_at: datetime
    verified: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class AttemptStatus:
    """Current failure counter for a subject key."""
    attempt_count: int = 0
    locked_until: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass
class FailureOutcome:
    """Result of recording one failed attempt."""
    attempt_count: int
    locked: bool
    locked_until: Optional[datetime] = None
    lock_triggered: bool = False  # This failure started the lock


@dataclass
class IssueResult:
    """Outcome of a code request."""
    ok: bool
    expires_at: Optional[datetime] = None
    error: Optional[OTPErrorKind] = None
    detail: Optional[str] = None  # Validation message, safe to show

    @classmethod
    def success(cls, expires_at: datetime) -> "IssueResult":
        return cls(ok=True, expires_at=expires_at)

    @classmethod
    def failure(cls, error: OTPErrorKind, detail: Optional[str] = None) -> "IssueResult":
        return cls(ok=False, error=error, detail=detail)


@dataclass
class VerifyResult:
    """Outcome of a code submission."""
    verified: bool
    error: Optional[OTPErrorKind] = None
    attempts_left: Optional[int] = None
    locked_until: Optional[datetime] = None
    reason: Optional[str] = None  # Internal reason, never shown to users

    @classmethod
    def success(cls) -> "VerifyResult":
        return cls(verified=True)

    @classmethod
    def locked(cls, locked_until: Optional[datetime]) -> "VerifyResult":
        return cls(
            verified=False,
            error=OTPErrorKind.LOCKED,
            locked_until=locked_until,
            reason="locked",
        )

    @classmethod
    def invalid(cls, reason: str, attempts_left: Optional[int] = None) -> "VerifyResult":
        return cls(
            verified=False,
            error=OTPErrorKind.INVALID,
            attempts_left=attempts_left,
            reason=reason,
        )

    @classmethod
    def failure(
        cls,
        error: OTPErrorKind,
        reason: str,
        attempts_left: Optional[int] = None,
    ) -> "VerifyResult":
        return cls(verified=False, error=error, attempts_left=attempts_left, reason=reason)
