"""
OTP Issuance and Verification
=============================
Email one-time codes with hashed storage, lockout and audit events.
"""

from .models import (
    OTPChallenge,
    AttemptStatus,
    FailureOutcome,
    IssueResult,
    VerifyResult,
)
from .hasher import get_cached_hasher
from .hashing import generate_otp, CodeHasher
from .store import ChallengeStore
from .lockout import LockoutEngine
from .directory import SubjectDirectory, InMemorySubjectDirectory
from .issuance import OTPIssuanceService
from .verification import OTPVerificationService

__all__ = [
    # Models
    "OTPChallenge",
    "AttemptStatus",
    "FailureOutcome",
    "IssueResult",
    "VerifyResult",
    # Hashing
    "get_cached_hasher",
    "generate_otp",
    "CodeHasher",
    # Stores
    "ChallengeStore",
    "LockoutEngine",
    # Directory
    "SubjectDirectory",
    "InMemorySubjectDirectory",
    # Services
    "OTPIssuanceService",
    "OTPVerificationService",
]
