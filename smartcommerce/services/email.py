"""Transactional email through Resend.

Without an API key the service runs in mock mode: messages are logged
instead of sent and results carry ``mock=True``. Links point at the
storefront (``email.frontend_url``), which posts the token back to the API.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import resend
from resend.exceptions import ResendError

from smartcommerce.config import EmailConfig, get_config
from smartcommerce.logging_config import get_logger
from smartcommerce.services.circuit_breaker import CircuitOpenError, get_circuit_breaker

logger = get_logger(__name__)


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    to: Optional[str] = None
    mock: bool = False
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _greeting(name: Optional[str]) -> str:
    return f"Hi {name}," if name else "Hi there,"


class EmailService:
    """Sends verification, password reset and welcome emails."""

    def __init__(self, config: Optional[EmailConfig] = None):
        self.config = config or get_config().email
        self.breaker = get_circuit_breaker("email", failure_threshold=5, recovery_timeout=60.0)
        if self.config.api_key:
            resend.api_key = self.config.api_key

    @property
    def mock_mode(self) -> bool:
        return not self.config.api_key

    @property
    def from_address(self) -> str:
        return self.config.from_address

    def link(self, path: str, token: str) -> str:
        return f"{self.config.frontend_url.rstrip('/')}/{path}?token={token}"

    async def send_verification(self, to: str, token: str, name: Optional[str] = None) -> EmailResult:
        url = self.link("verify-email", token)
        html = (
            f"<p>{_greeting(name)}</p>"
            "<p>Confirm your email address to activate your Smart Technologies account.</p>"
            f'<p><a href="{url}">Verify email</a></p>'
            "<p>আপনার ইমেল যাচাই করতে উপরের লিঙ্কে ক্লিক করুন। লিঙ্কটি 24 ঘণ্টা বৈধ।</p>"
        )
        return await self.send(to, "Verify your email address", html)

    async def send_password_reset(self, to: str, token: str, name: Optional[str] = None) -> EmailResult:
        url = self.link("reset-password", token)
        html = (
            f"<p>{_greeting(name)}</p>"
            "<p>We received a request to reset your password. The link expires in one hour.</p>"
            f'<p><a href="{url}">Reset password</a></p>'
            "<p>আপনি অনুরোধ না করে থাকলে এই ইমেলটি উপেক্ষা করুন।</p>"
        )
        return await self.send(to, "Reset your password", html)

    async def send_welcome(self, to: str, name: Optional[str] = None) -> EmailResult:
        html = (
            f"<p>{_greeting(name)}</p>"
            "<p>Welcome to Smart Technologies Bangladesh. Your account is ready.</p>"
            "<p>স্মার্ট টেকনোলজিস বাংলাদেশে আপনাকে স্বাগতম।</p>"
        )
        return await self.send(to, "Welcome to Smart Technologies", html)

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        if self.mock_mode:
            logger.warning("Email provider not configured, message logged instead of sent", extra={"to": to})
            logger.debug(f"Mock email to {to}: {subject}")
            return EmailResult(
                success=True,
                message_id=f"mock_{int(time.time() * 1000)}",
                to=to,
                mock=True,
            )

        params = {
            "from": self.config.from_address,
            "to": to,
            "subject": subject,
            "html": html,
        }
        try:
            async with self.breaker:
                response = await asyncio.to_thread(resend.Emails.send, params)
        except CircuitOpenError as e:
            logger.warning(f"Email circuit open: {e}")
            return EmailResult(success=False, to=to, error=str(e), code="EMAIL_UNAVAILABLE")
        except ResendError as e:
            logger.error(f"Email send failed: {e}", extra={"to": to})
            return EmailResult(success=False, to=to, error="Failed to send email", code="EMAIL_SEND_FAILED")

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info("Email sent", extra={"to": to, "subject": subject})
        return EmailResult(success=True, message_id=message_id, to=to)
