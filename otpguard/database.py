"""
Database Module
===============
Async engine and session factory helpers, and the shared declarative base.

Services receive the session factory explicitly; nothing here keeps a
process-wide engine.
"""

from datetime import datetime, timezone
from typing import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from sqlalchemy import DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator
import structlog

from otpguard.errors import StoreUnavailableError

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], AsyncSession]


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime column.

    SQLite has no timezone support and hands back naive values; those are
    read back as UTC.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def create_async_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> AsyncEngine:
    """
    Create and configure the async database engine.

    Args:
        database_url: Async connection string
            (postgresql+asyncpg://... or sqlite+aiosqlite:///...)
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Max overflow connections (ignored for SQLite)
        pool_pre_ping: Enable connection health checks
        echo: Log SQL statements

    Returns:
        Configured AsyncEngine instance
    """
    kwargs = {"pool_pre_ping": pool_pre_ping, "echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=pool_size, max_overflow=max_overflow)

    engine = sa_create_async_engine(database_url, **kwargs)
    logger.info("Database engine initialized", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create the session factory for an engine.

    Usage:
        factory = create_session_factory(engine)
        async with factory() as session:
            ...
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Register table modules on the metadata
    from otpguard.otp import tables  # noqa: F401
    from otpguard.audit import tables as audit_tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def transaction(
    session_factory: SessionFactory,
    operation: str,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session, commit on success and roll back on exception.

    Database errors are re-raised as StoreUnavailableError so callers
    never see driver-specific exceptions.

    Usage:
        async with transaction(factory, "challenge.replace") as session:
            await session.execute(...)
    """
    try:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except SQLAlchemyError as e:
        logger.error("Database operation failed", operation=operation, error=str(e))
        raise StoreUnavailableError(f"{operation} failed") from e


async def close_engine(engine: AsyncEngine) -> None:
    """Close the database engine. Call during application shutdown."""
    await engine.dispose()
    logger.info("Database engine closed")
