"""
Structured Logging
==================
structlog configuration shared by the library and the HTTP app.

Usage:
    from otpguard.logging_config import setup_logging, bind_request_context

    setup_logging(service_name="otpguard")
    bind_request_context(request_id="req_123", subject_id="user_1")
"""

import logging
import sys
from typing import Optional

import structlog


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        service_name: Name bound into every log event
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON (production) instead of console lines
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).info(
        "Logging configured", service=service_name, level=level.upper()
    )


def bind_request_context(
    request_id: str,
    subject_id: Optional[str] = None,
) -> None:
    """Bind request-scoped fields for every log event in this context."""
    structlog.contextvars.bind_contextvars(request_id=request_id)
    if subject_id:
        structlog.contextvars.bind_contextvars(subject_id=subject_id)


def clear_request_context() -> None:
    """Drop request-scoped fields, keeping the service name."""
    structlog.contextvars.unbind_contextvars("request_id", "subject_id")


def mask_email(email: Optional[str]) -> str:
    """Mask an email for logs, keeping the first character and domain."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"
