"""
Audit Event Types
=================
Standard audit event and actor types.
"""

from enum import Enum


class AuditEventType(str, Enum):
    """Standard audit event types."""
    # Email verification
    OTP_ISSUED = "otp_issued"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    OTP_LOCKED = "otp_locked"

    # Authentication
    USER_SIGNUP = "user_signup"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"

    # Profile
    PROFILE_UPDATED = "profile_updated"
    EMAIL_ADDED = "email_added"
    EMAIL_CHANGED = "email_changed"

    # Admin
    USER_BLOCKED = "user_blocked"
    USER_UNBLOCKED = "user_unblocked"
    ADMIN_ACTION = "admin_action"

    # Security
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"

    # System
    API_ERROR = "api_error"


class ActorType(str, Enum):
    """Who performed the audited action."""
    ANONYMOUS = "anonymous"
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"
