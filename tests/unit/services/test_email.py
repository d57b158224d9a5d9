"""Unit tests for transactional email delivery."""

from unittest.mock import MagicMock, patch

import pytest
from resend.exceptions import ResendError

from smartcommerce.config import EmailConfig
from smartcommerce.services.circuit_breaker import CircuitBreaker
from smartcommerce.services.email import EmailService

CONFIGURED = EmailConfig(
    api_key="re_test_key",
    from_address="Shop <noreply@shop.example>",
    frontend_url="https://shop.example/",
)


@pytest.fixture
def service():
    svc = EmailService(CONFIGURED)
    svc.breaker = CircuitBreaker("email-test", failure_threshold=1, recovery_timeout=60.0)
    return svc


class TestMockMode:
    async def test_logs_instead_of_sending(self):
        svc = EmailService(EmailConfig())
        with patch("resend.Emails.send") as send:
            result = await svc.send_verification("rahim@example.com", "tok-123", "Rahim")

        send.assert_not_called()
        assert svc.mock_mode
        assert result.success
        assert result.mock is True
        assert result.to == "rahim@example.com"
        assert result.message_id.startswith("mock_")


class TestLinks:
    def test_link_joins_frontend_and_token(self, service):
        assert service.link("verify-email", "abc") == "https://shop.example/verify-email?token=abc"

    async def test_reset_email_carries_link(self, service):
        with patch("resend.Emails.send", return_value={"id": "msg_1"}) as send:
            result = await service.send_password_reset("rahim@example.com", "reset-tok", "Rahim")

        params = send.call_args.args[0]
        assert params["from"] == "Shop <noreply@shop.example>"
        assert params["to"] == "rahim@example.com"
        assert params["subject"] == "Reset your password"
        assert "https://shop.example/reset-password?token=reset-tok" in params["html"]
        assert "Hi Rahim," in params["html"]
        assert result.success
        assert result.message_id == "msg_1"
        assert result.mock is False


class TestFailures:
    async def test_provider_error_is_a_result(self, service):
        error = ResendError(422, "validation_error", "Invalid `to` field", "Check the recipient")
        with patch("resend.Emails.send", side_effect=error):
            result = await service.send_welcome("bad@example.com")

        assert not result.success
        assert result.code == "EMAIL_SEND_FAILED"
        assert result.to_dict() == {
            "success": False,
            "to": "bad@example.com",
            "mock": False,
            "error": "Failed to send email",
            "code": "EMAIL_SEND_FAILED",
        }

    async def test_open_circuit_skips_provider(self, service):
        with patch("resend.Emails.send", side_effect=ResendError(500, "api_error", "down", "retry")):
            await service.send_welcome("rahim@example.com")

        with patch("resend.Emails.send", MagicMock()) as send:
            result = await service.send_welcome("rahim@example.com")

        send.assert_not_called()
        assert result.code == "EMAIL_UNAVAILABLE"
