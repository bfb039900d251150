"""
HTTP Interface
==============
FastAPI router exposing code issuance and verification.

Usage:
    router = create_otp_router(components, get_subject_id=current_user_id)
    app.include_router(router, prefix="/api/user")
"""

import json
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import structlog

from otpguard.audit import ActorType, AuditEventType, AuditLogger, RequestContext
from otpguard.config import OTPSettings
from otpguard.errors import (
    OTPErrorKind,
    RateLimiterUnavailableError,
    error_response,
)
from otpguard.otp import OTPIssuanceService, OTPVerificationService
from otpguard.ratelimit import (
    ANONYMOUS,
    RateLimitInfo,
    RateLimitTier,
    TieredRateLimiter,
    client_identifier,
    rate_limit_headers,
)
from otpguard.validation import IssueRequest, VerifyRequest

logger = structlog.get_logger(__name__)

_ISSUE_STATUS = {
    OTPErrorKind.VALIDATION: 400,
    OTPErrorKind.ALREADY_VERIFIED: 400,
    OTPErrorKind.EMAIL_IN_USE: 409,
    OTPErrorKind.DELIVERY_FAILED: 502,
    OTPErrorKind.INTERNAL: 500,
}


@dataclass
class OTPComponents:
    """Everything the routes need, wired once at startup."""
    settings: OTPSettings
    issuance: OTPIssuanceService
    verification: OTPVerificationService
    limiter: TieredRateLimiter
    audit: AuditLogger


def request_context(request: Request, settings: OTPSettings) -> Tuple[str, RequestContext]:
    """Derive the rate limit identifier and audit context of a request."""
    identifier = client_identifier(request.headers, settings.trusted_ip_headers)
    context = RequestContext(
        ip=None if identifier == ANONYMOUS else identifier,
        user_agent=request.headers.get("user-agent"),
    )
    return identifier, context


async def _parse_body(request: Request, model):
    """Parse and validate a JSON body; returns (model, field, message)."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, None, "Request body must be JSON"
    try:
        return model.model_validate(payload), None, None
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        message = str(first.get("msg", "Invalid value")).removeprefix("Value error, ")
        return None, field, message


def create_otp_router(
    components: OTPComponents,
    get_subject_id: Callable,
    tier: RateLimitTier = RateLimitTier.AUTH,
) -> APIRouter:
    """
    Create the email verification router.

    Args:
        components: Wired services
        get_subject_id: FastAPI dependency returning the authenticated
            subject id (401 handling belongs to the dependency)
        tier: Rate limit tier applied to both routes

    Returns:
        APIRouter with POST /email/otp and POST /email/otp/verify
    """
    router = APIRouter(tags=["email-verification"])
    settings = components.settings

    async def gate(
        request: Request,
        subject_id: str,
    ) -> Tuple[Optional[JSONResponse], Dict[str, str], RequestContext]:
        identifier, context = request_context(request, settings)
        try:
            info: RateLimitInfo = await components.limiter.allow(tier, identifier)
        except RateLimiterUnavailableError as e:
            return (
                error_response(OTPErrorKind.INTERNAL, 500, log_message=str(e)),
                {},
                context,
            )

        headers = rate_limit_headers(info)
        if info.allowed:
            return None, headers, context

        await components.audit.log(
            AuditEventType.RATE_LIMIT_EXCEEDED,
            actor_type=ActorType.USER if subject_id else ActorType.ANONYMOUS,
            actor_id=subject_id,
            metadata={"tier": tier.value, "path": request.url.path},
            context=context,
        )
        return (
            error_response(OTPErrorKind.RATE_LIMITED, 429, headers=headers),
            headers,
            context,
        )

    @router.post("/email/otp")
    async def issue_code(request: Request, subject_id: str = Depends(get_subject_id)):
        blocked, headers, context = await gate(request, subject_id)
        if blocked is not None:
            return blocked

        body, field, message = await _parse_body(request, IssueRequest)
        if body is None:
            return JSONResponse(
                status_code=400,
                content={"error": message, "field": field},
                headers=headers,
            )

        result = await components.issuance.issue(subject_id, body.email, context)
        if result.ok:
            return JSONResponse(
                content={"success": True, "expiresAt": result.expires_at.isoformat()},
                headers=headers,
            )

        if result.error == OTPErrorKind.VALIDATION:
            return JSONResponse(
                status_code=400,
                content={"error": result.detail, "field": "email"},
                headers=headers,
            )
        return error_response(
            result.error,
            _ISSUE_STATUS.get(result.error, 500),
            log_message=f"issue failed: {result.error.value}",
            headers=headers,
            field="email" if result.error == OTPErrorKind.EMAIL_IN_USE else None,
        )

    @router.post("/email/otp/verify")
    async def verify_code(request: Request, subject_id: str = Depends(get_subject_id)):
        blocked, headers, context = await gate(request, subject_id)
        if blocked is not None:
            return blocked

        body, field, message = await _parse_body(request, VerifyRequest)
        if body is None:
            return JSONResponse(
                status_code=400,
                content={"error": message, "field": field},
                headers=headers,
            )

        result = await components.verification.verify(
            subject_id, body.email, body.code, context
        )
        if result.verified:
            return JSONResponse(content={"verified": True}, headers=headers)

        if result.error == OTPErrorKind.LOCKED:
            return error_response(
                OTPErrorKind.LOCKED,
                400,
                headers=headers,
                locked=True,
                lockedUntil=result.locked_until.isoformat() if result.locked_until else None,
            )
        if result.error in (OTPErrorKind.INVALID, OTPErrorKind.EXPIRED):
            return error_response(
                result.error,
                400,
                headers=headers,
                attemptsLeft=result.attempts_left,
            )
        if result.error == OTPErrorKind.VALIDATION:
            return JSONResponse(
                status_code=400,
                content={"error": result.reason, "field": "code"},
                headers=headers,
            )
        return error_response(
            OTPErrorKind.INTERNAL,
            500,
            log_message=f"verify failed: {result.reason}",
            headers=headers,
        )

    return router
