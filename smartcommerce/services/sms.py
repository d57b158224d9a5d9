"""SMS delivery through an HTTP SMS gateway.

Without an API key the service runs in mock mode: messages are logged
instead of sent and results carry ``mock=True``.
"""

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx

from smartcommerce.config import SMSConfig, get_config
from smartcommerce.http_client import get_async_client, request_with_retry
from smartcommerce.logging_config import get_logger
from smartcommerce.services.circuit_breaker import CircuitOpenError, get_circuit_breaker
from smartcommerce.services.phone_validation import PhoneValidator, phone_validator

logger = get_logger(__name__)


def otp_message(otp: str) -> str:
    """Bilingual OTP text."""
    return (
        f"Smart Technologies Bangladesh: আপনার OTP কোডটি {otp}। "
        f"এটি 5 মিনিটের মধ্যে ব্যবহার করুন। Your OTP is {otp}. Use within 5 minutes."
    )


@dataclass
class SMSResult:
    success: bool
    message_id: Optional[str] = None
    phone: Optional[str] = None
    operator: Optional[str] = None
    mock: bool = False
    error: Optional[str] = None
    error_bn: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class SMSService:
    """Sends SMS to Bangladesh mobile numbers."""

    def __init__(self, config: Optional[SMSConfig] = None, validator: Optional[PhoneValidator] = None):
        self.config = config or get_config().sms
        self.validator = validator or phone_validator
        self.breaker = get_circuit_breaker("sms", failure_threshold=5, recovery_timeout=60.0)

    @property
    def mock_mode(self) -> bool:
        return not (self.config.api_key and self.config.api_url)

    async def send_otp(self, phone: str, otp: str) -> SMSResult:
        return await self.send_message(phone, otp_message(otp))

    async def send_message(self, phone: str, text: str) -> SMSResult:
        validation = self.validator.validate_for_use_case(phone, "sms")
        if not validation.is_valid:
            return SMSResult(
                success=False,
                error=validation.error,
                error_bn=validation.error_bn,
                code=validation.code or "INVALID_PHONE",
            )

        normalized = validation.normalized_phone
        if self.mock_mode:
            logger.warning(
                "SMS gateway not configured, message logged instead of sent",
                extra={"phone": normalized, "operator": validation.operator},
            )
            logger.debug(f"Mock SMS to {normalized}: {text}")
            return SMSResult(
                success=True,
                message_id=f"mock_{int(time.time() * 1000)}",
                phone=normalized,
                operator=validation.operator,
                mock=True,
            )

        try:
            async with self.breaker:
                client = await get_async_client()
                response = await request_with_retry(
                    client,
                    "POST",
                    self.config.api_url,
                    data={
                        "api_key": self.config.api_key,
                        "senderid": self.config.sender_id,
                        "number": normalized.lstrip("+"),
                        "message": text,
                    },
                    timeout=self.config.timeout,
                )
        except CircuitOpenError as e:
            logger.warning(f"SMS gateway circuit open: {e}")
            return SMSResult(success=False, phone=normalized, error=str(e), code="SMS_UNAVAILABLE")
        except httpx.HTTPError as e:
            logger.error(f"SMS send failed: {e}", extra={"phone": normalized})
            return SMSResult(
                success=False,
                phone=normalized,
                error="Failed to send SMS",
                error_bn="SMS পাঠাতে ব্যর্থ হয়েছে",
                code="SMS_SEND_FAILED",
            )

        message_id = None
        try:
            body = response.json()
            if isinstance(body, dict):
                message_id = body.get("message_id") or body.get("id")
        except ValueError:
            logger.debug("SMS gateway returned a non-JSON body")

        logger.info("SMS sent", extra={"phone": normalized, "operator": validation.operator})
        return SMSResult(
            success=True,
            message_id=str(message_id) if message_id else None,
            phone=normalized,
            operator=validation.operator,
        )
