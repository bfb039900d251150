"""
Verification State Machine
==========================
Checks a submitted code: lockout, lookup, expiry, hash, outcome.

Challenge states:
    Pending  -> Verified  (correct code, terminal)
    Pending  -> Expired   (time passed, terminal, row deleted)
    Pending  -> Locked    (attempts exhausted; rejected until the lock ends)

Business outcomes come back as VerifyResult values; only store and
directory failures become the INTERNAL kind.

A missing challenge, a wrong code and an expired code all report the
remaining attempt budget, so their responses have the same shape.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from otpguard.audit import ActorType, AuditEventType, AuditLogger, RequestContext
from otpguard.config import OTPSettings
from otpguard.database import utcnow
from otpguard.errors import DirectoryUnavailableError, OTPErrorKind, StoreUnavailableError
from otpguard.logging_config import mask_email
from otpguard.notify import Notifier
from otpguard.validation import normalize_email, validate_code, validate_email
from .directory import SubjectDirectory, call_directory
from .hashing import CodeHasher
from .lockout import LockoutEngine
from .models import AttemptStatus, OTPChallenge, VerifyResult
from .store import ChallengeStore

logger = structlog.get_logger(__name__)

_TARGET = "email_verification"


class OTPVerificationService:
    """Verify submitted codes against the active challenge."""

    def __init__(
        self,
        settings: OTPSettings,
        store: ChallengeStore,
        lockout: LockoutEngine,
        directory: SubjectDirectory,
        audit: AuditLogger,
        hasher: Optional[CodeHasher] = None,
        clock: Callable[[], datetime] = utcnow,
        notifier: Optional[Notifier] = None,
    ):
        self.settings = settings
        self.store = store
        self.lockout = lockout
        self.directory = directory
        self.audit = audit
        self.hasher = hasher or CodeHasher()
        self.clock = clock
        self.notifier = notifier  # Security notice on email change

    async def verify(
        self,
        subject_id: str,
        email: str,
        code: str,
        context: Optional[RequestContext] = None,
    ) -> VerifyResult:
        """
        Verify a code for a (subject_id, email) pair.

        Args:
            subject_id: Authenticated subject
            email: Address being verified
            code: Submitted code
            context: Client IP and user agent for auditing

        Returns:
            VerifyResult (verified, or locked / invalid / expired / internal)
        """
        error = validate_email(email) or validate_code(code, self.settings.code_length)
        if error:
            return VerifyResult.failure(OTPErrorKind.VALIDATION, error)
        email = normalize_email(email)
        context = context or RequestContext()

        try:
            return await self._verify(subject_id, email, code, context)
        except StoreUnavailableError as e:
            logger.error(
                "Verification failed, store unavailable",
                subject_id=subject_id,
                error=str(e),
            )
            return VerifyResult.failure(OTPErrorKind.INTERNAL, "store unavailable")
        except DirectoryUnavailableError as e:
            logger.error(
                "Verification failed, directory unavailable",
                subject_id=subject_id,
                error=str(e),
            )
            return VerifyResult.failure(OTPErrorKind.INTERNAL, "directory unavailable")

    def _attempts_left(self, status: AttemptStatus) -> int:
        return max(0, self.settings.max_attempts - status.attempt_count)

    async def _verify(
        self,
        subject_id: str,
        email: str,
        code: str,
        context: RequestContext,
    ) -> VerifyResult:
        # 1. Lockout
        status = await self.lockout.get_status(subject_id, email)
        if status.is_locked(self.clock()):
            await self._audit(
                AuditEventType.OTP_LOCKED, subject_id, email, context,
                reason="locked", locked_until=status.locked_until.isoformat(),
            )
            return VerifyResult.locked(status.locked_until)

        # 2. Lookup
        challenge = await self.store.get_pending(subject_id, email)
        if challenge is None:
            await self.hasher.verify_dummy(code)
            await self._audit(
                AuditEventType.OTP_FAILED, subject_id, email, context,
                reason="no request found",
            )
            return VerifyResult.invalid(
                "no request found", attempts_left=self._attempts_left(status),
            )

        # 3. Expiry
        if challenge.is_expired(self.clock()):
            await self.store.delete(challenge.id)
            await self._audit(
                AuditEventType.OTP_FAILED, subject_id, email, context,
                reason="expired", challenge_id=challenge.id,
            )
            return VerifyResult.failure(
                OTPErrorKind.EXPIRED, "expired", attempts_left=self._attempts_left(status),
            )

        # 4. Hash check
        if not await self.hasher.verify(code, challenge.code_hash):
            outcome = await self.lockout.record_failure(
                subject_id, email, ip=context.ip, user_agent=context.user_agent,
            )
            if outcome.locked:
                await self._audit(
                    AuditEventType.OTP_LOCKED, subject_id, email, context,
                    reason="too many attempts",
                    attempts=outcome.attempt_count,
                    locked_until=outcome.locked_until.isoformat(),
                    lock_triggered=outcome.lock_triggered,
                )
                return VerifyResult.locked(outcome.locked_until)

            attempts_left = max(0, self.settings.max_attempts - outcome.attempt_count)
            await self._audit(
                AuditEventType.OTP_FAILED, subject_id, email, context,
                reason="invalid code", attempts=outcome.attempt_count,
            )
            return VerifyResult.invalid("invalid code", attempts_left=attempts_left)

        return await self._consume(challenge, status, context)

    async def _consume(
        self,
        challenge: OTPChallenge,
        status: AttemptStatus,
        context: RequestContext,
    ) -> VerifyResult:
        subject_id, email = challenge.subject_id, challenge.email
        previous = await call_directory(
            self.directory.get_verified_email, subject_id
        )

        # A concurrent request may have consumed it first
        if not await self.store.mark_verified(challenge.id):
            await self._audit(
                AuditEventType.OTP_FAILED, subject_id, email, context,
                reason="already consumed", challenge_id=challenge.id,
            )
            return VerifyResult.invalid(
                "already consumed", attempts_left=self._attempts_left(status),
            )

        try:
            await call_directory(
                self.directory.apply_verified_email, subject_id, email
            )
        except DirectoryUnavailableError:
            # Email not bound: keep the code usable for a retry
            await self.store.release(challenge.id)
            raise

        await self.lockout.reset(subject_id, email)

        logger.info("OTP verified", subject_id=subject_id, email=mask_email(email))
        await self.audit.log(
            AuditEventType.OTP_VERIFIED,
            actor_type=ActorType.USER,
            actor_id=subject_id,
            target_type=_TARGET,
            target_id=challenge.id,
            changes={"email": {"old": previous, "new": email}},
            metadata={"email": email},
            context=context,
        )

        if previous and previous != email:
            await self._notify_previous(subject_id, previous, email)
        return VerifyResult.success()

    async def _notify_previous(self, subject_id: str, previous: str, email: str) -> None:
        """Best-effort notice to the replaced address."""
        if self.notifier is None:
            return
        try:
            await self.notifier.send_security_notice(previous, email)
        except Exception as e:
            logger.warning(
                "Security notice failed",
                subject_id=subject_id,
                email=mask_email(previous),
                error=str(e),
            )

    async def _audit(
        self,
        event_type: AuditEventType,
        subject_id: str,
        email: str,
        context: RequestContext,
        **metadata,
    ) -> None:
        logger.info(
            "OTP verification rejected",
            subject_id=subject_id,
            email=mask_email(email),
            **metadata,
        )
        await self.audit.log(
            event_type,
            actor_type=ActorType.USER,
            actor_id=subject_id,
            target_type=_TARGET,
            target_id=subject_id,
            metadata={"email": email, **metadata},
            context=context,
        )
