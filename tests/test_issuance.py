"""
Tests for OTP issuance.
"""

import asyncio
from datetime import timedelta

import pytest

SUBJECT = "user-1"
EMAIL = "alice@example.com"


class TestIssue:
    """Tests for issuing codes."""

    @pytest.mark.asyncio
    async def test_issue_success(self, issuance, store, notifier, clock):
        """Issues a 6-digit code expiring in 10 minutes."""
        result = await issuance.issue(SUBJECT, EMAIL)

        assert result.ok is True
        assert result.expires_at == clock.now + timedelta(minutes=10)
        assert notifier.sent[0][0] == EMAIL
        assert len(notifier.last_code) == 6

        challenge = await store.get_pending(SUBJECT, EMAIL)
        assert challenge is not None
        assert notifier.last_code not in challenge.code_hash

    @pytest.mark.asyncio
    async def test_email_normalized(self, issuance, store, notifier):
        await issuance.issue(SUBJECT, "  Alice@Example.COM ")

        assert notifier.sent[0][0] == EMAIL
        assert await store.get_pending(SUBJECT, EMAIL) is not None

    @pytest.mark.asyncio
    async def test_reissue_invalidates_previous(self, issuance, store, hasher, notifier, clock):
        """Only the newest challenge stays pending."""
        await issuance.issue(SUBJECT, EMAIL)
        first_code = notifier.last_code
        clock.advance(1)
        await issuance.issue(SUBJECT, EMAIL)

        assert await store.count_pending(SUBJECT) == 1
        challenge = await store.get_pending(SUBJECT, EMAIL)
        if first_code != notifier.last_code:
            assert await hasher.verify(first_code, challenge.code_hash) is False

    @pytest.mark.asyncio
    async def test_issue_for_new_email_drops_other_pending(self, issuance, store):
        await issuance.issue(SUBJECT, EMAIL)
        await issuance.issue(SUBJECT, "alice@work.example.com")

        assert await store.count_pending(SUBJECT) == 1
        assert await store.get_pending(SUBJECT, EMAIL) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["", "not-an-email", "x@mailinator.com", "a" * 95 + "@b.com"])
    async def test_invalid_email(self, issuance, notifier, email):
        from otpguard.errors import OTPErrorKind

        result = await issuance.issue(SUBJECT, email)

        assert result.ok is False
        assert result.error == OTPErrorKind.VALIDATION
        assert result.detail
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_current_email_rejected(self, issuance, directory, notifier):
        """Requesting the address already bound to the subject is refused."""
        from otpguard.errors import OTPErrorKind

        await directory.apply_verified_email(SUBJECT, EMAIL)
        result = await issuance.issue(SUBJECT, "Alice@Example.com")

        assert result.error == OTPErrorKind.ALREADY_VERIFIED
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_change_request_allowed(self, issuance, directory, notifier, audit_sink):
        """A verified subject may request a code for a new address."""
        from otpguard.audit import AuditEventType

        await directory.apply_verified_email(SUBJECT, "old@example.com")
        result = await issuance.issue(SUBJECT, EMAIL)

        assert result.ok is True
        assert notifier.sent[0][0] == EMAIL
        event = audit_sink.of_type(AuditEventType.OTP_ISSUED)[0]
        assert event.metadata["email_change"] is True

    @pytest.mark.asyncio
    async def test_directory_unavailable(self, issuance, directory, notifier, monkeypatch):
        from unittest.mock import AsyncMock
        from otpguard.errors import OTPErrorKind

        monkeypatch.setattr(
            directory, "is_email_taken",
            AsyncMock(side_effect=ConnectionError("directory down")),
        )

        result = await issuance.issue(SUBJECT, EMAIL)

        assert result.error == OTPErrorKind.INTERNAL
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_email_in_use(self, issuance, directory):
        from otpguard.errors import OTPErrorKind

        await directory.apply_verified_email("user-2", EMAIL)
        result = await issuance.issue(SUBJECT, EMAIL)

        assert result.error == OTPErrorKind.EMAIL_IN_USE

    @pytest.mark.asyncio
    async def test_issue_audited(self, issuance, audit_sink):
        """Issuance writes an otp_issued event with a masked email."""
        from otpguard.audit import AuditEventType, RequestContext

        await issuance.issue(SUBJECT, EMAIL, RequestContext(ip="1.2.3.4", user_agent="ua"))

        events = audit_sink.of_type(AuditEventType.OTP_ISSUED)
        assert len(events) == 1
        assert events[0].actor_id == SUBJECT
        assert events[0].ip == "1.2.3.4"
        assert events[0].metadata["email"] != EMAIL


class TestDeliveryFailure:
    """Tests for the compensating delete on delivery failure."""

    @pytest.mark.asyncio
    async def test_notifier_error(self, issuance, store, notifier, audit_sink):
        """A failed send deletes the challenge and reports delivery failure."""
        from otpguard.audit import AuditEventType
        from otpguard.errors import NotifierError, OTPErrorKind

        notifier.error = NotifierError("provider rejected", status_code=422)
        result = await issuance.issue(SUBJECT, EMAIL)

        assert result.error == OTPErrorKind.DELIVERY_FAILED
        assert await store.count_pending(SUBJECT) == 0
        failed = audit_sink.of_type(AuditEventType.OTP_FAILED)
        assert failed[0].metadata["reason"] == "delivery_failed"
        assert audit_sink.of_type(AuditEventType.OTP_ISSUED) == []

    @pytest.mark.asyncio
    async def test_notifier_timeout(self, issuance, store, notifier):
        """A hung notifier counts as a delivery failure."""
        from otpguard.errors import OTPErrorKind

        notifier.delay = 5.0
        result = await issuance.issue(SUBJECT, EMAIL)

        assert result.error == OTPErrorKind.DELIVERY_FAILED
        assert await store.count_pending(SUBJECT) == 0

    @pytest.mark.asyncio
    async def test_failed_reissue_leaves_nothing_pending(self, issuance, store, notifier):
        """The prior challenge is already gone when the new send fails."""
        from otpguard.errors import NotifierError

        await issuance.issue(SUBJECT, EMAIL)
        notifier.error = NotifierError("down")
        await issuance.issue(SUBJECT, EMAIL)

        assert await store.get_pending(SUBJECT, EMAIL) is None


class TestStoreFailure:
    """Tests for store outages."""

    @pytest.mark.asyncio
    async def test_store_unavailable(self, settings, notifier, directory, audit, hasher):
        from unittest.mock import AsyncMock
        from otpguard.errors import OTPErrorKind, StoreUnavailableError
        from otpguard.otp import OTPIssuanceService

        store = AsyncMock()
        store.replace.side_effect = StoreUnavailableError("challenge.replace failed")
        service = OTPIssuanceService(settings, store, notifier, directory, audit, hasher=hasher)

        result = await service.issue(SUBJECT, EMAIL)

        assert result.error == OTPErrorKind.INTERNAL
        assert notifier.sent == []


class TestChallengeStore:
    """Tests for challenge persistence."""

    @pytest.mark.asyncio
    async def test_mark_verified_once(self, issuance, store):
        """Only the first consume succeeds."""
        await issuance.issue(SUBJECT, EMAIL)
        challenge = await store.get_pending(SUBJECT, EMAIL)

        results = await asyncio.gather(
            store.mark_verified(challenge.id),
            store.mark_verified(challenge.id),
        )

        assert sorted(results) == [False, True]
        assert await store.get_pending(SUBJECT, EMAIL) is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, issuance, store, clock):
        await issuance.issue(SUBJECT, EMAIL)

        assert await store.purge_expired(clock.now) == 0
        assert await store.purge_expired(clock.now + timedelta(minutes=11)) == 1
