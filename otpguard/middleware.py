"""
Request Logging Middleware
==========================
ASGI middleware binding a request id into the log context and logging
each request/response pair.
"""

import time
import uuid

import structlog

from otpguard.logging_config import bind_request_context, clear_request_context

logger = structlog.get_logger("http")


class RequestLoggingMiddleware:
    """Log every HTTP request with its status and duration."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode()[:64] or uuid.uuid4().hex[:8]
        bind_request_context(request_id)

        method = scope.get("method", "")
        path = scope.get("path", "")
        start_time = time.time()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                message.setdefault("headers", [])
                message["headers"] = list(message["headers"]) + [
                    (b"x-request-id", request_id.encode())
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            logger.exception("Unhandled error", method=method, path=path)
            raise
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            log = logger.info if status_code < 400 else logger.warning if status_code < 500 else logger.error
            log(
                "Request handled",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
            )
            clear_request_context()
