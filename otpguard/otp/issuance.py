"""
OTP Issuance Service
====================
Creates challenges, invalidates prior ones and hands the code to the
notifier.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from otpguard.audit import ActorType, AuditEventType, AuditLogger, RequestContext
from otpguard.config import OTPSettings
from otpguard.database import utcnow
from otpguard.errors import (
    DirectoryUnavailableError,
    NotifierError,
    OTPErrorKind,
    StoreUnavailableError,
)
from otpguard.logging_config import mask_email
from otpguard.notify import Notifier
from otpguard.validation import normalize_email, validate_email
from .directory import SubjectDirectory, call_directory
from .hashing import CodeHasher, generate_otp
from .models import IssueResult, OTPChallenge
from .store import ChallengeStore

logger = structlog.get_logger(__name__)


class OTPIssuanceService:
    """
    Issue a verification code for a (subject_id, email) pair.

    Persistence and delivery are not one transaction: the challenge is
    stored first and deleted again only if the notifier reports failure.
    """

    def __init__(
        self,
        settings: OTPSettings,
        store: ChallengeStore,
        notifier: Notifier,
        directory: SubjectDirectory,
        audit: AuditLogger,
        hasher: Optional[CodeHasher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.store = store
        self.notifier = notifier
        self.directory = directory
        self.audit = audit
        self.hasher = hasher or CodeHasher()
        self.clock = clock

    async def issue(
        self,
        subject_id: str,
        email: str,
        context: Optional[RequestContext] = None,
    ) -> IssueResult:
        """
        Create a challenge and deliver its code.

        Args:
            subject_id: Authenticated subject requesting verification
            email: Address to verify
            context: Client IP and user agent for auditing

        Returns:
            IssueResult with expires_at, or the error kind
        """
        error = validate_email(email)
        if error:
            return IssueResult.failure(OTPErrorKind.VALIDATION, error)
        email = normalize_email(email)

        try:
            current = await call_directory(self.directory.get_verified_email, subject_id)
            taken = await call_directory(self.directory.is_email_taken, email, subject_id)
        except DirectoryUnavailableError as e:
            logger.error("Issue failed, directory unavailable", subject_id=subject_id, error=str(e))
            return IssueResult.failure(OTPErrorKind.INTERNAL)

        if current == email:
            logger.info("Issue rejected, email already current", subject_id=subject_id)
            return IssueResult.failure(OTPErrorKind.ALREADY_VERIFIED)
        if taken:
            logger.info("Issue rejected, email in use", subject_id=subject_id)
            return IssueResult.failure(OTPErrorKind.EMAIL_IN_USE)

        try:
            code = generate_otp(self.settings.code_length)
            now = self.clock()
            challenge = OTPChallenge(
                id=str(uuid.uuid4()),
                subject_id=subject_id,
                email=email,
                code_hash=await self.hasher.hash(code),
                created_at=now,
                expires_at=now + timedelta(seconds=self.settings.expiry_seconds),
            )

            await self.store.replace(challenge)
        except StoreUnavailableError as e:
            logger.error("Issue failed, store unavailable", subject_id=subject_id, error=str(e))
            return IssueResult.failure(OTPErrorKind.INTERNAL)

        try:
            await asyncio.wait_for(
                self.notifier.send(email, code),
                timeout=self.settings.notifier_timeout,
            )
        except (NotifierError, asyncio.TimeoutError) as e:
            return await self._compensate(challenge, context, e)

        logger.info(
            "OTP issued",
            subject_id=subject_id,
            email=mask_email(email),
            expires_at=challenge.expires_at.isoformat(),
        )
        await self.audit.log(
            AuditEventType.OTP_ISSUED,
            actor_type=ActorType.USER,
            actor_id=subject_id,
            target_type="email_verification",
            target_id=challenge.id,
            metadata={
                "email": email,
                "expires_at": challenge.expires_at.isoformat(),
                "email_change": current is not None,
            },
            context=context,
        )
        return IssueResult.success(challenge.expires_at)

    async def _compensate(
        self,
        challenge: OTPChallenge,
        context: Optional[RequestContext],
        cause: Exception,
    ) -> IssueResult:
        """Delete an undeliverable challenge and report delivery failure."""
        logger.warning(
            "OTP delivery failed",
            subject_id=challenge.subject_id,
            email=mask_email(challenge.email),
            error=str(cause) or type(cause).__name__,
        )
        try:
            await self.store.delete(challenge.id)
        except StoreUnavailableError as e:
            logger.error(
                "Compensating delete failed",
                challenge_id=challenge.id,
                error=str(e),
            )
            return IssueResult.failure(OTPErrorKind.INTERNAL)

        await self.audit.log(
            AuditEventType.OTP_FAILED,
            actor_type=ActorType.USER,
            actor_id=challenge.subject_id,
            target_type="email_verification",
            target_id=challenge.id,
            metadata={"email": challenge.email, "reason": "delivery_failed"},
            context=context,
        )
        return IssueResult.failure(OTPErrorKind.DELIVERY_FAILED)
