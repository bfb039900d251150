"""
OTP Challenge Store
===================
Persistence for the single active challenge per subject.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
import structlog

from otpguard.database import SessionFactory, transaction
from .models import OTPChallenge
from .tables import ChallengeRow

logger = structlog.get_logger(__name__)


def _to_challenge(row: ChallengeRow) -> OTPChallenge:
    return OTPChallenge(
        id=row.id,
        subject_id=row.subject_id,
        email=row.email,
        code_hash=row.code_hash,
        created_at=row.created_at,
        expires_at=row.expires_at,
        verified=row.verified,
    )


class ChallengeStore:
    """
    Challenge persistence on a shared SQL database.

    Each operation runs in its own short transaction; all cross-request
    coordination relies on conditional statements, not in-process locks.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def replace(self, challenge: OTPChallenge) -> int:
        """
        Store a new challenge, dropping the subject's pending ones.

        Deletes every non-verified challenge of the subject and inserts
        the new one in the same transaction.

        Returns:
            Number of prior pending challenges removed
        """
        async with transaction(self.session_factory, "challenge.replace") as session:
            result = await session.execute(
                delete(ChallengeRow).where(
                    ChallengeRow.subject_id == challenge.subject_id,
                    ChallengeRow.verified.is_(False),
                )
            )
            session.add(ChallengeRow(
                id=challenge.id,
                subject_id=challenge.subject_id,
                email=challenge.email,
                code_hash=challenge.code_hash,
                created_at=challenge.created_at,
                expires_at=challenge.expires_at,
                verified=False,
            ))

        removed = result.rowcount or 0
        if removed:
            logger.info(
                "Pending challenges invalidated",
                subject_id=challenge.subject_id,
                removed=removed,
            )
        return removed

    async def get_pending(self, subject_id: str, email: str) -> Optional[OTPChallenge]:
        """Fetch the most recent non-verified challenge for a subject key."""
        async with transaction(self.session_factory, "challenge.get_pending") as session:
            result = await session.execute(
                select(ChallengeRow)
                .where(
                    ChallengeRow.subject_id == subject_id,
                    ChallengeRow.email == email,
                    ChallengeRow.verified.is_(False),
                )
                .order_by(ChallengeRow.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _to_challenge(row) if row else None

    async def mark_verified(self, challenge_id: str) -> bool:
        """
        Consume a challenge.

        Compare-and-swap on the verified flag: only one request can flip a
        given challenge from pending to verified.

        Returns:
            True if this call consumed the challenge
        """
        async with transaction(self.session_factory, "challenge.mark_verified") as session:
            result = await session.execute(
                update(ChallengeRow)
                .where(
                    ChallengeRow.id == challenge_id,
                    ChallengeRow.verified.is_(False),
                )
                .values(verified=True)
            )
        return (result.rowcount or 0) == 1

    async def release(self, challenge_id: str) -> None:
        """Return a consumed challenge to pending so its code can be retried."""
        async with transaction(self.session_factory, "challenge.release") as session:
            await session.execute(
                update(ChallengeRow)
                .where(
                    ChallengeRow.id == challenge_id,
                    ChallengeRow.verified.is_(True),
                )
                .values(verified=False)
            )

    async def delete(self, challenge_id: str) -> None:
        """Delete a challenge by id."""
        async with transaction(self.session_factory, "challenge.delete") as session:
            await session.execute(
                delete(ChallengeRow).where(ChallengeRow.id == challenge_id)
            )

    async def count_pending(self, subject_id: str, email: Optional[str] = None) -> int:
        """Count non-verified challenges of a subject (optionally one email)."""
        async with transaction(self.session_factory, "challenge.count_pending") as session:
            query = select(ChallengeRow.id).where(
                ChallengeRow.subject_id == subject_id,
                ChallengeRow.verified.is_(False),
            )
            if email is not None:
                query = query.where(ChallengeRow.email == email)
            result = await session.execute(query)
            return len(result.all())

    async def purge_expired(self, now: datetime) -> int:
        """
        Delete expired, unverified challenges.

        Returns:
            Number of rows removed
        """
        async with transaction(self.session_factory, "challenge.purge_expired") as session:
            result = await session.execute(
                delete(ChallengeRow).where(
                    ChallengeRow.verified.is_(False),
                    ChallengeRow.expires_at < now,
                )
            )
        removed = result.rowcount or 0
        logger.info("Expired challenges purged", removed=removed)
        return removed
