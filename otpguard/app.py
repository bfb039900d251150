"""
Application Factory
===================
Builds a FastAPI app serving email verification.

Usage:
    settings = OTPSettings.from_env()
    app = create_app(settings, directory=UsersDirectory(), get_subject_id=current_user_id)
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
import redis.asyncio as aioredis
import structlog

from otpguard import __version__
from otpguard.api import OTPComponents, create_otp_router
from otpguard.audit import AuditLogger, SqlAuditSink
from otpguard.audit.logger import GeoLookup
from otpguard.config import OTPSettings
from otpguard.database import (
    close_engine,
    create_async_engine,
    create_session_factory,
    init_models,
)
from otpguard.health import create_health_router
from otpguard.logging_config import setup_logging
from otpguard.middleware import RequestLoggingMiddleware
from otpguard.notify import ConsoleNotifier, Notifier, ResendNotifier
from otpguard.otp import (
    ChallengeStore,
    CodeHasher,
    LockoutEngine,
    OTPIssuanceService,
    OTPVerificationService,
    SubjectDirectory,
)
from otpguard.ratelimit import RedisSlidingWindow, TieredRateLimiter

logger = structlog.get_logger(__name__)


def build_notifier(settings: OTPSettings) -> Notifier:
    """Resend when an API key is configured, console output otherwise."""
    if settings.resend_api_key:
        return ResendNotifier(
            api_key=settings.resend_api_key,
            from_email=settings.from_email,
            timeout=settings.notifier_timeout,
            expiry_minutes=max(1, settings.expiry_seconds // 60),
        )
    logger.warning("RESEND_API_KEY not set, codes are written to the log")
    return ConsoleNotifier()


def create_app(
    settings: OTPSettings,
    directory: SubjectDirectory,
    get_subject_id: Callable,
    notifier: Optional[Notifier] = None,
    geo_lookup: Optional[GeoLookup] = None,
    prefix: str = "/api/user",
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Resolved settings
        directory: Host application's subject/email records
        get_subject_id: Dependency returning the authenticated subject id
        notifier: Code delivery (defaults from settings)
        geo_lookup: Optional IP geolocation for audit metadata
        prefix: Route prefix for the verification endpoints

    Returns:
        Configured FastAPI app
    """
    setup_logging(settings.service_name, settings.log_level, settings.log_json)

    engine = create_async_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    redis_client = aioredis.from_url(settings.redis_url)

    hasher = CodeHasher()
    store = ChallengeStore(session_factory)
    audit = AuditLogger(SqlAuditSink(session_factory), geo_lookup=geo_lookup)
    notifier = notifier or build_notifier(settings)

    components = OTPComponents(
        settings=settings,
        issuance=OTPIssuanceService(
            settings, store, notifier, directory, audit, hasher=hasher,
        ),
        verification=OTPVerificationService(
            settings,
            store,
            LockoutEngine(session_factory, settings),
            directory,
            audit,
            hasher=hasher,
            notifier=notifier,
        ),
        limiter=TieredRateLimiter(
            RedisSlidingWindow(redis_client),
            tiers=settings.tiers,
            fail_open=settings.rate_limit_fail_open,
            prefix=settings.service_name,
        ),
        audit=audit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_models(engine)
        logger.info("Service started", service=settings.service_name, version=__version__)
        yield
        if isinstance(notifier, ResendNotifier):
            await notifier.aclose()
        await redis_client.aclose()
        await close_engine(engine)

    app = FastAPI(title=settings.service_name, version=__version__, lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(create_health_router(
        settings.service_name, __version__, engine=engine, redis_client=redis_client,
    ))
    app.include_router(create_otp_router(components, get_subject_id), prefix=prefix)
    app.state.components = components
    return app
