"""Tests for bilingual API error responses."""

from fastapi import status

from smartcommerce.api.shared.helpers.errors import (
    ERROR_REGISTRY,
    APIError,
    ErrorCode,
    create_error_response,
    get_error_info,
)


class TestErrorRegistry:
    def test_every_code_is_registered(self):
        for code in ErrorCode:
            assert code in ERROR_REGISTRY
            info = get_error_info(code)
            assert info.message
            assert info.message_bn
            assert info.action

    def test_registry_entries_match_their_keys(self):
        for code, info in ERROR_REGISTRY.items():
            assert info.code == code


class TestCreateErrorResponse:
    def test_defaults_from_registry(self):
        body = create_error_response(ErrorCode.AUTH_MISSING_TOKEN)

        assert body["error"] == "auth_missing_token"
        assert body["error_code"] == "ERR_AUTH_001"
        assert body["detail"] == "Authentication required."
        assert body["detail_bn"] == "প্রমাণীকরণ প্রয়োজন।"

    def test_overrides_and_extra(self):
        body = create_error_response(
            ErrorCode.OTP_RESEND_TOO_SOON,
            detail="Please wait 90 seconds",
            extra={"retry_after": 90},
        )
        assert body["detail"] == "Please wait 90 seconds"
        assert body["retry_after"] == 90


class TestAPIError:
    def test_status_and_body(self):
        error = APIError(ErrorCode.LIMIT_RATE_EXCEEDED, headers={"Retry-After": "30"})

        assert error.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert error.detail["error_code"] == ErrorCode.LIMIT_RATE_EXCEEDED.value
        assert error.headers == {"Retry-After": "30"}
        assert error.error_code is ErrorCode.LIMIT_RATE_EXCEEDED

    def test_not_found_status(self):
        assert APIError(ErrorCode.ADDRESS_NOT_FOUND).status_code == status.HTTP_404_NOT_FOUND
