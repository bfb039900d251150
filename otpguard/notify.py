"""
Code Delivery
=============
Notifiers that deliver a plaintext code to an email address.
"""

from html import escape
from typing import Optional, Protocol

import httpx
import structlog

from otpguard.errors import NotifierError
from otpguard.logging_config import mask_email

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com"


class Notifier(Protocol):
    """Delivers a code; raises NotifierError when delivery fails."""

    async def send(self, email: str, code: str) -> None:
        ...

    async def send_security_notice(self, current_email: str, new_email: str) -> None:
        """Tell the previous address that the account email changed."""
        ...


def render_code_email(code: str, expiry_minutes: int) -> str:
    """Plain HTML body for a verification email."""
    return (
        "<p>Your verification code is:</p>"
        f"<p style=\"font-size:24px;letter-spacing:4px\"><strong>{code}</strong></p>"
        f"<p>This code expires in {expiry_minutes} minutes. "
        "If you did not request it, you can ignore this email.</p>"
    )


def render_security_notice(current_email: str, new_email: str) -> str:
    return (
        "<p>The email address on your account was changed.</p>"
        f"<p>Previous: {escape(current_email)}<br>New: {escape(new_email)}</p>"
        "<p>If you did not make this change, secure your account immediately.</p>"
    )


class ResendNotifier:
    """
    Sends codes through the Resend email API.

    Features:
    - Connection pooling (via httpx.AsyncClient).
    - Bounded request timeout.
    - httpx errors mapped to NotifierError.
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        timeout: float = 10.0,
        subject: str = "Verify your email",
        expiry_minutes: int = 10,
        base_url: str = RESEND_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("Resend API key is required")

        self.from_email = from_email
        self.subject = subject
        self.expiry_minutes = expiry_minutes
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def _post(self, to: str, subject: str, html: str) -> Optional[str]:
        """Send one email; returns the provider message id when reported."""
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            response = await self.client.post("/emails", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NotifierError("Email provider timed out") from e
        except httpx.HTTPStatusError as e:
            raise NotifierError(
                "Email provider rejected the message",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise NotifierError(f"Email provider unreachable: {e}") from e

        # The message is accepted at this point; the body is informational
        try:
            return response.json().get("id")
        except (ValueError, AttributeError):
            return None

    async def send(self, email: str, code: str) -> None:
        message_id = await self._post(
            email, self.subject, render_code_email(code, self.expiry_minutes)
        )
        logger.info(
            "Verification email sent",
            email=mask_email(email),
            message_id=message_id,
        )

    async def send_security_notice(self, current_email: str, new_email: str) -> None:
        message_id = await self._post(
            current_email,
            "Security alert: your email address was changed",
            render_security_notice(current_email, new_email),
        )
        logger.info(
            "Security notice sent",
            email=mask_email(current_email),
            message_id=message_id,
        )


class ConsoleNotifier:
    """
    Writes codes to the log instead of sending them.

    For local development only: this is the one place a plaintext code
    reaches a log line.
    """

    async def send(self, email: str, code: str) -> None:
        logger.info("[VERIFICATION] Email not sent", email=email, code=code)

    async def send_security_notice(self, current_email: str, new_email: str) -> None:
        logger.info(
            "[SECURITY] Email not sent",
            email=current_email,
            new_email=new_email,
        )
