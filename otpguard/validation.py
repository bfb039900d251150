"""
Input Validation
================
Email and code validation, shared by the services and request models.
"""

import re
from typing import Optional

from pydantic import BaseModel, field_validator

MAX_EMAIL_LENGTH = 100

DISPOSABLE_EMAIL_DOMAINS = frozenset({
    "tempmail.com",
    "10minutemail.com",
    "guerrillamail.com",
    "mailinator.com",
    "throwaway.email",
    "temp-mail.org",
    "fakeinbox.com",
    "yopmail.com",
    "trashmail.com",
    "getnada.com",
})

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_RE = re.compile(r"^[0-9]+$")


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address."""
    return email.strip().lower()


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate an email address.

    Returns:
        Error message, or None if the address is acceptable
    """
    if not isinstance(email, str):
        return "Email is required"

    trimmed = normalize_email(email)
    if not trimmed:
        return "Email is required"

    if len(trimmed) > MAX_EMAIL_LENGTH:
        return f"Email must not exceed {MAX_EMAIL_LENGTH} characters"

    if not _EMAIL_RE.match(trimmed):
        return "Please enter a valid email address"

    domain = trimmed.split("@", 1)[1]
    if domain in DISPOSABLE_EMAIL_DOMAINS:
        return "Disposable email addresses are not allowed"

    return None


def validate_code(code: Optional[str], length: int = 6) -> Optional[str]:
    """Validate a verification code of exactly ``length`` ASCII digits."""
    if not isinstance(code, str) or len(code) != length:
        return f"Code must be exactly {length} digits"
    if not _DIGITS_RE.match(code):
        return "Code must contain only numbers"
    return None


class IssueRequest(BaseModel):
    """Body of a code request."""
    email: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        error = validate_email(value)
        if error:
            raise ValueError(error)
        return normalize_email(value)


class VerifyRequest(IssueRequest):
    """
    Body of a code submission.

    The code format depends on the configured code length and is checked
    by the verification service.
    """
    code: str
