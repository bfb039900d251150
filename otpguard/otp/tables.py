"""
OTP Tables
==========
SQLAlchemy mappings for challenges and attempt counters.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from otpguard.database import Base, UTCDateTime


class ChallengeRow(Base):
    """One issued code (email_verifications)."""
    __tablename__ = "email_verifications"
    __table_args__ = (
        Index("ix_email_verifications_subject", "subject_id", "email", "verified"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class AttemptRow(Base):
    """Failure counter and lock for one subject key (otp_attempts)."""
    __tablename__ = "otp_attempts"
    __table_args__ = (
        UniqueConstraint("subject_id", "email", name="uq_otp_attempts_subject_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    # Written together with locked_until by the failure that started the lock
    lock_token: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
