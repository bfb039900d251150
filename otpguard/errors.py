"""
Error Kinds and User-Facing Errors
==================================
Tagged error kinds returned by the services, infrastructure exceptions,
and the standardized user-facing error responses.

CRITICAL: Never expose internal error details to end users.
"""

from enum import Enum
from typing import Any, Optional

from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class OTPErrorKind(str, Enum):
    """Outcome kinds callers branch on."""
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    ALREADY_VERIFIED = "already_verified"
    EMAIL_IN_USE = "email_in_use"
    DELIVERY_FAILED = "delivery_failed"
    LOCKED = "locked"
    INVALID = "invalid"
    EXPIRED = "expired"
    INTERNAL = "internal"


# Invalid, expired and locked share one message so a caller cannot tell
# "no such request" from "wrong code" from "expired".
_GENERIC_CODE_MESSAGE = "Invalid or expired verification code. Please request a new one."

USER_MESSAGES = {
    OTPErrorKind.VALIDATION: "The request is invalid.",
    OTPErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    OTPErrorKind.ALREADY_VERIFIED: "This is already your current email address.",
    OTPErrorKind.EMAIL_IN_USE: "This email is already in use by another account.",
    OTPErrorKind.DELIVERY_FAILED: "Failed to send verification email. Please try again.",
    OTPErrorKind.LOCKED: _GENERIC_CODE_MESSAGE,
    OTPErrorKind.INVALID: _GENERIC_CODE_MESSAGE,
    OTPErrorKind.EXPIRED: _GENERIC_CODE_MESSAGE,
    OTPErrorKind.INTERNAL: "Something went wrong. Please try again later.",
}


class OTPGuardError(Exception):
    """Base exception for infrastructure failures."""
    pass


class StoreUnavailableError(OTPGuardError):
    """Raised when the challenge or attempt store cannot be reached."""
    pass


class DirectoryUnavailableError(OTPGuardError):
    """Raised when the host application's subject directory fails."""
    pass


class RateLimiterUnavailableError(OTPGuardError):
    """Raised when the limiter backend is down and the limiter fails closed."""
    pass


class NotifierError(OTPGuardError):
    """Raised when the notifier reports a delivery failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def error_response(
    kind: OTPErrorKind,
    status_code: int,
    log_message: Optional[str] = None,
    headers: Optional[dict] = None,
    **extra: Any,
) -> JSONResponse:
    """
    Create a user-facing JSONResponse for an error kind.

    Args:
        kind: Internal error kind (logged, mapped to a generic message)
        status_code: HTTP status code
        log_message: Technical message for logs
        headers: Extra response headers
        **extra: Additional public fields (e.g. attemptsLeft, field)

    Returns:
        JSONResponse with a user-friendly message
    """
    if log_message:
        logger.warning("Request rejected", code=kind.value, detail=log_message)

    content = {"error": USER_MESSAGES[kind]}
    content.update({k: v for k, v in extra.items() if v is not None})

    return JSONResponse(status_code=status_code, content=content, headers=headers)
