"""
Shared Test Fixtures
====================
SQLite-backed stores, a controllable clock and fast hashing.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from argon2 import PasswordHasher


class FakeClock:
    """Mutable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeNotifier:
    """Records sent codes; can be told to fail or hang."""

    def __init__(self):
        self.sent = []
        self.notices = []
        self.error = None
        self.delay = 0.0

    async def send(self, email: str, code: str) -> None:
        import asyncio

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append((email, code))

    async def send_security_notice(self, current_email: str, new_email: str) -> None:
        if self.error is not None:
            raise self.error
        self.notices.append((current_email, new_email))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    from otpguard.config import OTPSettings

    return OTPSettings(notifier_timeout=0.5)


@pytest.fixture
def hasher():
    """Argon2id with minimal cost so tests stay fast."""
    from otpguard.otp import CodeHasher

    return CodeHasher(PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest_asyncio.fixture
async def engine(tmp_path):
    from otpguard.database import close_engine, create_async_engine, init_models

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'otp.db'}")
    await init_models(engine)
    yield engine
    await close_engine(engine)


@pytest.fixture
def session_factory(engine):
    from otpguard.database import create_session_factory

    return create_session_factory(engine)


@pytest.fixture
def directory():
    from otpguard.otp import InMemorySubjectDirectory

    return InMemorySubjectDirectory()


@pytest.fixture
def audit_sink():
    from otpguard.audit import MemoryAuditSink

    return MemoryAuditSink()


@pytest.fixture
def audit(audit_sink):
    from otpguard.audit import AuditLogger

    return AuditLogger(audit_sink)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store(session_factory):
    from otpguard.otp import ChallengeStore

    return ChallengeStore(session_factory)


@pytest.fixture
def lockout(session_factory, settings, clock):
    from otpguard.otp import LockoutEngine

    return LockoutEngine(session_factory, settings, clock=clock)


@pytest.fixture
def issuance(settings, store, notifier, directory, audit, hasher, clock):
    from otpguard.otp import OTPIssuanceService

    return OTPIssuanceService(
        settings, store, notifier, directory, audit, hasher=hasher, clock=clock,
    )


@pytest.fixture
def verification(settings, store, lockout, directory, audit, hasher, clock, notifier):
    from otpguard.otp import OTPVerificationService

    return OTPVerificationService(
        settings, store, lockout, directory, audit,
        hasher=hasher, clock=clock, notifier=notifier,
    )
