"""
Tests for best-effort audit logging.
"""

import pytest


class FailingSink:
    async def write(self, event):
        raise RuntimeError("audit store down")


class TestSanitizeMetadata:
    """Tests for PII masking."""

    def test_masks_email_and_phone(self):
        from otpguard.audit import sanitize_metadata

        result = sanitize_metadata({
            "email": "alice@example.com",
            "phone": "+15555550123",
            "reason": "invalid code",
        })

        assert result["email"] == "***.com"
        assert result["phone"] == "***0123"
        assert result["reason"] == "invalid code"

    def test_nested(self):
        from otpguard.audit import sanitize_metadata

        result = sanitize_metadata({"outer": {"email": "bob@example.org"}})

        assert result["outer"]["email"] == "***.org"

    def test_empty(self):
        from otpguard.audit import sanitize_metadata

        assert sanitize_metadata(None) == {}


class TestAuditLogger:
    """Tests for the audit logger."""

    @pytest.mark.asyncio
    async def test_log_records_event(self, audit, audit_sink):
        from otpguard.audit import ActorType, AuditEventType, RequestContext

        ok = await audit.log(
            AuditEventType.OTP_ISSUED,
            actor_type=ActorType.USER,
            actor_id="user-1",
            metadata={"email": "alice@example.com"},
            context=RequestContext(ip="1.2.3.4", user_agent="pytest"),
        )

        assert ok is True
        event = audit_sink.events[0]
        assert event.event_type == "otp_issued"
        assert event.actor_type == "user"
        assert event.user_agent == "pytest"
        assert event.metadata["email"] == "***.com"

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_raise(self):
        """A failing sink reports False instead of raising."""
        from otpguard.audit import AuditEventType, AuditLogger

        audit = AuditLogger(FailingSink())

        assert await audit.log(AuditEventType.OTP_FAILED, actor_id="user-1") is False

    @pytest.mark.asyncio
    async def test_geo_enrichment(self, audit_sink):
        from otpguard.audit import AuditEventType, AuditLogger, RequestContext

        async def lookup(ip):
            return {"country": "NL"}

        audit = AuditLogger(audit_sink, geo_lookup=lookup)
        await audit.log(AuditEventType.USER_LOGIN, context=RequestContext(ip="1.2.3.4"))

        assert audit_sink.events[0].metadata["geo"] == {"country": "NL"}

    @pytest.mark.asyncio
    async def test_geo_failure_ignored(self, audit_sink):
        """Geolocation errors never block the event."""
        from otpguard.audit import AuditEventType, AuditLogger, RequestContext

        async def lookup(ip):
            raise TimeoutError("geo service slow")

        audit = AuditLogger(audit_sink, geo_lookup=lookup)
        ok = await audit.log(AuditEventType.USER_LOGIN, context=RequestContext(ip="1.2.3.4"))

        assert ok is True
        assert "geo" not in audit_sink.events[0].metadata

    @pytest.mark.asyncio
    async def test_verification_survives_audit_outage(
        self, settings, store, notifier, directory, hasher, clock,
    ):
        """Issuing still succeeds when every audit write fails."""
        from otpguard.audit import AuditLogger
        from otpguard.otp import OTPIssuanceService

        service = OTPIssuanceService(
            settings, store, notifier, directory, AuditLogger(FailingSink()),
            hasher=hasher, clock=clock,
        )

        result = await service.issue("user-1", "alice@example.com")

        assert result.ok is True


class TestSqlAuditSink:
    """Tests for the audit_logs table sink."""

    @pytest.mark.asyncio
    async def test_persists_event(self, session_factory):
        from sqlalchemy import select
        from otpguard.audit import AuditEventType, AuditLogger, SqlAuditSink
        from otpguard.audit.tables import AuditLogRow

        audit = AuditLogger(SqlAuditSink(session_factory))
        await audit.log(
            AuditEventType.OTP_VERIFIED,
            actor_id="user-1",
            changes={"email": {"old": None, "new": "alice@example.com"}},
            metadata={"reason": "ok"},
        )

        async with session_factory() as session:
            rows = (await session.execute(select(AuditLogRow))).scalars().all()

        assert len(rows) == 1
        assert rows[0].event_type == "otp_verified"
        assert rows[0].event_metadata == {"reason": "ok"}
        assert rows[0].changes["email"]["new"] == "alice@example.com"
