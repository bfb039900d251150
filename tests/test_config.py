"""
Tests for settings and input validation.
"""

import pytest


class TestSettings:
    """Tests for OTPSettings."""

    def test_defaults(self):
        from otpguard.config import OTPSettings
        from otpguard.ratelimit import RateLimitTier

        settings = OTPSettings()

        assert settings.expiry_seconds == 600
        assert settings.max_attempts == 5
        assert settings.lock_seconds == 900
        assert settings.policy(RateLimitTier.AUTH).limit == 5
        assert settings.policy(RateLimitTier.AUTH).window_seconds == 900

    def test_from_env(self, monkeypatch):
        from otpguard.config import OTPSettings

        monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("RATE_LIMIT_FAIL_OPEN", "false")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")

        settings = OTPSettings.from_env()

        assert settings.max_attempts == 3
        assert settings.rate_limit_fail_open is False
        assert settings.redis_url == "redis://cache:6379/1"

    def test_tiers_not_shared(self):
        """Each settings object owns its tier table."""
        from otpguard.config import OTPSettings
        from otpguard.ratelimit import RateLimitTier, TierPolicy

        first = OTPSettings()
        first.tiers[RateLimitTier.AUTH] = TierPolicy(limit=1, window_seconds=1)

        assert OTPSettings().policy(RateLimitTier.AUTH).limit == 5


class TestValidation:
    """Tests for email and code validation."""

    def test_valid_email(self):
        from otpguard.validation import validate_email

        assert validate_email("Alice@Example.com") is None

    @pytest.mark.parametrize("email, message", [
        (None, "Email is required"),
        ("   ", "Email is required"),
        ("alice", "Please enter a valid email address"),
        ("a@yopmail.com", "Disposable email addresses are not allowed"),
    ])
    def test_invalid_email(self, email, message):
        from otpguard.validation import validate_email

        assert validate_email(email) == message

    def test_code(self):
        from otpguard.validation import validate_code

        assert validate_code("012345") is None
        assert validate_code("12345") == "Code must be exactly 6 digits"
        assert validate_code("abcdef") == "Code must contain only numbers"

    def test_code_length_configurable(self):
        from otpguard.validation import validate_code

        assert validate_code("01234567", length=8) is None
        assert validate_code("012345", length=8) == "Code must be exactly 8 digits"

    def test_request_model_normalizes(self):
        from otpguard.validation import IssueRequest

        assert IssueRequest(email=" Bob@Example.COM ").email == "bob@example.com"
