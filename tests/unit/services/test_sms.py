"""Unit tests for SMS delivery and the shared HTTP retry helper."""

from urllib.parse import parse_qs

import httpx
import pytest

from smartcommerce.config import SMSConfig
from smartcommerce.http_client import request_with_retry
from smartcommerce.services import sms as sms_module
from smartcommerce.services.circuit_breaker import CircuitBreaker
from smartcommerce.services.sms import SMSService, otp_message

GATEWAY = SMSConfig(api_url="https://sms.example.com/send", api_key="key-123", sender_id="ShopBD")


class RecordedRequests(list):
    """Requests seen by the fake gateway, plus queued responses."""

    def __init__(self):
        super().__init__()
        self.responses = []


@pytest.fixture
def gateway_requests(monkeypatch):
    """Route the shared HTTP client to an in-process handler; returns the seen requests."""
    seen = RecordedRequests()

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return seen.responses.pop(0) if seen.responses else httpx.Response(200, json={"message_id": "abc123"})

    async def fake_client():
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(sms_module, "get_async_client", fake_client)
    return seen


@pytest.fixture
def service():
    svc = SMSService(GATEWAY)
    svc.breaker = CircuitBreaker("sms-test", failure_threshold=1, recovery_timeout=60.0)
    return svc


class TestMockMode:
    async def test_logs_instead_of_sending(self):
        result = await SMSService(SMSConfig()).send_otp("01712345678", "482913")

        assert result.success
        assert result.mock is True
        assert result.phone == "+8801712345678"
        assert result.operator == "Grameenphone"
        assert result.message_id.startswith("mock_")

    async def test_invalid_phone(self):
        result = await SMSService(SMSConfig()).send_message("12345", "hello")
        assert not result.success
        assert result.error_bn

    async def test_landline(self):
        result = await SMSService(SMSConfig()).send_message("0212345678", "hello")
        assert result.code == "MOBILE_ONLY"


class TestGateway:
    async def test_posts_form(self, service, gateway_requests):
        result = await service.send_otp("+8801812345678", "482913")

        assert result.success
        assert result.mock is False
        assert result.message_id == "abc123"
        [request] = gateway_requests
        form = parse_qs(request.content.decode())
        assert form["number"] == ["8801812345678"]
        assert form["senderid"] == ["ShopBD"]
        assert "482913" in form["message"][0]

    async def test_http_error(self, service, gateway_requests):
        gateway_requests.responses.append(httpx.Response(400, json={"error": "bad sender"}))

        result = await service.send_message("+8801812345678", "hello")

        assert not result.success
        assert result.code == "SMS_SEND_FAILED"

    async def test_open_circuit(self, service, gateway_requests):
        service.breaker.record_failure()

        result = await service.send_message("+8801812345678", "hello")

        assert result.code == "SMS_UNAVAILABLE"
        assert gateway_requests == []

    def test_message_is_bilingual(self):
        text = otp_message("482913")
        assert "Your OTP is 482913" in text
        assert "আপনার OTP" in text


class TestRequestWithRetry:
    async def test_retries_server_errors(self):
        statuses = [503, 200]

        def handler(request):
            return httpx.Response(statuses.pop(0))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            response = await request_with_retry(client, "GET", "https://sms.example.com", retry_delay=0)

        assert response.status_code == 200
        assert statuses == []

    async def test_gives_up(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(502))) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await request_with_retry(client, "GET", "https://sms.example.com", max_retries=1, retry_delay=0)

    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await request_with_retry(client, "GET", "https://sms.example.com", retry_delay=0)

        assert len(calls) == 1
