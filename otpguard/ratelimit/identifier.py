"""
Client Identification
=====================
Derive rate limit identifiers and response headers.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Mapping

from .models import RateLimitInfo

ANONYMOUS = "anonymous"

DEFAULT_IP_HEADERS = ("cf-connecting-ip", "x-real-ip", "x-forwarded-for")


def client_identifier(
    headers: Mapping[str, str],
    trusted_headers: Iterable[str] = DEFAULT_IP_HEADERS,
) -> str:
    """
    Extract the client IP set by a trusted upstream proxy.

    Headers are tried in order; for a forwarding chain the first hop is
    the original client. Callers without any header share the
    "anonymous" bucket.
    """
    for name in trusted_headers:
        value = headers.get(name)
        if not value:
            continue
        ip = value.split(",")[0].strip()
        if ip:
            return ip
    return ANONYMOUS


def rate_limit_headers(info: RateLimitInfo) -> Dict[str, str]:
    """Build the X-RateLimit-* (and Retry-After) response headers."""
    reset = datetime.fromtimestamp(info.reset_at, tz=timezone.utc)
    headers = {
        "X-RateLimit-Limit": str(info.limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": reset.isoformat(),
    }
    if not info.allowed and info.retry_after is not None:
        headers["Retry-After"] = str(info.retry_after)
    return headers
