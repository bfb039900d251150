"""
Attempt Tracker / Lockout Engine
================================
Per-subject failure counter with a time-boxed lockout.

The counter is incremented by a single upsert statement evaluated by the
database, so concurrent failures serialize (4 -> 5 -> 6) instead of
overwriting each other.
"""

import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import and_, case, literal, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
import structlog

from otpguard.config import OTPSettings
from otpguard.database import SessionFactory, UTCDateTime, transaction, utcnow
from .models import AttemptStatus, FailureOutcome
from .tables import AttemptRow

logger = structlog.get_logger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class LockoutEngine:
    """
    Failure counting and lockout on a shared SQL database.

    Policy:
    - ``max_attempts`` failures lock the subject key for ``lock_seconds``.
    - A lock never extends while it is active.
    - The counter only resets on successful verification.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        settings: OTPSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.max_attempts = settings.max_attempts
        self.lock_window = timedelta(seconds=settings.lock_seconds)
        self.clock = clock

    async def get_status(self, subject_id: str, email: str) -> AttemptStatus:
        """Read the current counter for a subject key."""
        async with transaction(self.session_factory, "attempts.get_status") as session:
            result = await session.execute(
                select(AttemptRow).where(
                    AttemptRow.subject_id == subject_id,
                    AttemptRow.email == email,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return AttemptStatus()
            return AttemptStatus(
                attempt_count=row.attempt_count,
                locked_until=row.locked_until,
                last_attempt_at=row.last_attempt_at,
            )

    async def locked_until(self, subject_id: str, email: str) -> Optional[datetime]:
        """Return the lock expiry if the key is locked right now."""
        status = await self.get_status(subject_id, email)
        if status.is_locked(self.clock()):
            return status.locked_until
        return None

    async def is_locked(self, subject_id: str, email: str) -> bool:
        """True iff a lock is set and still in the future."""
        return await self.locked_until(subject_id, email) is not None

    async def record_failure(
        self,
        subject_id: str,
        email: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> FailureOutcome:
        """
        Atomically count a failed attempt.

        Sets ``locked_until`` in the same statement when the new count
        reaches ``max_attempts`` and no lock is active.

        Returns:
            FailureOutcome with the new count and lock state
        """
        now = self.clock()
        lock_until = now + self.lock_window
        token = uuid.uuid4().hex
        locks_on_first = self.max_attempts <= 1

        async with transaction(self.session_factory, "attempts.record_failure") as session:
            insert = _INSERT_BY_DIALECT.get(session.bind.dialect.name)
            if insert is None:
                raise NotImplementedError(
                    f"Unsupported dialect: {session.bind.dialect.name}"
                )

            table = AttemptRow.__table__
            new_count = table.c.attempt_count + 1
            starts_lock = and_(
                new_count >= self.max_attempts,
                or_(
                    table.c.locked_until.is_(None),
                    table.c.locked_until <= now,
                ),
            )

            stmt = insert(table).values(
                subject_id=subject_id,
                email=email,
                attempt_count=1,
                locked_until=lock_until if locks_on_first else None,
                lock_token=token if locks_on_first else None,
                last_attempt_at=now,
                last_ip=ip,
                last_user_agent=user_agent,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.subject_id, table.c.email],
                set_={
                    "attempt_count": new_count,
                    "locked_until": case(
                        (starts_lock, literal(lock_until, UTCDateTime())),
                        else_=table.c.locked_until,
                    ),
                    "lock_token": case(
                        (starts_lock, literal(token)),
                        else_=table.c.lock_token,
                    ),
                    "last_attempt_at": now,
                    "last_ip": ip,
                    "last_user_agent": user_agent,
                },
            ).returning(
                table.c.attempt_count,
                table.c.locked_until,
                table.c.lock_token,
            )

            result = await session.execute(stmt)
            attempt_count, locked_until, lock_token = result.one()

        locked = locked_until is not None and locked_until > now
        lock_triggered = locked and lock_token == token

        outcome = FailureOutcome(
            attempt_count=attempt_count,
            locked=locked,
            locked_until=locked_until if locked else None,
            lock_triggered=lock_triggered,
        )

        if lock_triggered:
            logger.warning(
                "Subject locked after failed attempts",
                subject_id=subject_id,
                attempts=attempt_count,
                locked_until=locked_until.isoformat(),
            )
        else:
            logger.info(
                "Failed attempt recorded",
                subject_id=subject_id,
                attempts=attempt_count,
                locked=locked,
            )
        return outcome

    async def reset(self, subject_id: str, email: str) -> None:
        """Clear the counter and any lock after a successful verification."""
        async with transaction(self.session_factory, "attempts.reset") as session:
            await session.execute(
                update(AttemptRow)
                .where(
                    AttemptRow.subject_id == subject_id,
                    AttemptRow.email == email,
                )
                .values(attempt_count=0, locked_until=None, lock_token=None)
            )
        logger.info("Attempt counter reset", subject_id=subject_id)
