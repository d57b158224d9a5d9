"""Unit tests for Bangladesh phone number validation."""

import pytest

from smartcommerce.services.phone_validation import PhoneValidator, normalize_phone, phone_validator


@pytest.fixture
def validator():
    return PhoneValidator()


class TestMobileNumbers:
    @pytest.mark.parametrize(
        "phone,fmt",
        [
            ("+8801712345678", "international"),
            ("8801712345678", "country_code"),
            ("01712345678", "local"),
            ("017-1234-5678", "local"),
            ("+880 1712 345678", "international"),
        ],
    )
    def test_accepted_forms_normalize_to_international(self, validator, phone, fmt):
        result = validator.validate(phone)
        assert result.is_valid
        assert result.normalized_phone == "+8801712345678"
        assert result.type == "mobile"
        assert result.format == fmt

    @pytest.mark.parametrize(
        "phone,operator",
        [
            ("01312345678", "Teletalk"),
            ("01412345678", "Banglalink"),
            ("01612345678", "Airtel"),
            ("01712345678", "Grameenphone"),
            ("01812345678", "Robi"),
            ("01912345678", "Banglalink"),
        ],
    )
    def test_operator_detection(self, validator, phone, operator):
        result = validator.validate(phone)
        assert result.operator == operator
        assert result.operator_prefix == phone[:3]

    def test_unknown_prefix_is_invalid_format(self, validator):
        result = validator.validate("01212345678")
        assert not result.is_valid
        assert result.code == "INVALID_FORMAT"
        assert result.error_bn
        assert result.suggestions
        assert "mobile" in result.examples

    def test_wrong_length_is_invalid(self, validator):
        assert not validator.validate("0171234567").is_valid
        assert not validator.validate("017123456789").is_valid


class TestInvalidInput:
    def test_none_is_invalid_input(self, validator):
        result = validator.validate(None)
        assert result.code == "INVALID_INPUT"

    def test_non_string_is_invalid_input(self, validator):
        assert validator.validate(1712345678).code == "INVALID_INPUT"

    def test_only_punctuation_is_empty(self, validator):
        assert validator.validate("--- ()").code == "EMPTY_PHONE"


class TestLandlineAndSpecial:
    def test_dhaka_landline(self, validator):
        result = validator.validate("0212345678")
        assert result.is_valid
        assert result.type == "landline"
        assert result.normalized_phone == "+880212345678"
        assert result.area_code == "02"
        assert result.area_info["area"] == "Dhaka"

    def test_chittagong_landline(self, validator):
        result = validator.validate("0311234567")
        assert result.is_valid
        assert result.area_code == "031"

    def test_landline_rejected_when_not_allowed(self, validator):
        assert not validator.validate("0212345678", allow_landline=False).is_valid

    def test_special_numbers_only_when_allowed(self, validator):
        assert not validator.validate("999").is_valid
        result = validator.validate("999", allow_special=True)
        assert result.is_valid
        assert result.special_type == "emergency"


class TestUseCases:
    def test_otp_requires_mobile(self, validator):
        result = validator.validate_for_use_case("0212345678", "otp")
        assert not result.is_valid
        assert result.code == "MOBILE_ONLY"

    def test_registration_flags(self, validator):
        result = validator.validate_for_use_case("01712345678", "registration")
        assert result.is_valid
        assert result.can_receive_sms is True
        assert result.can_receive_otp is True
        assert result.requires_verification is True

    def test_registration_allows_landline_without_sms(self, validator):
        result = validator.validate_for_use_case("0212345678", "registration")
        assert result.is_valid
        assert result.can_receive_otp is False

    def test_verification_flag(self, validator):
        assert validator.validate_for_use_case("01812345678", "verification").is_verifiable is True


class TestFormattingHelpers:
    def test_format_phone(self, validator):
        assert validator.format_phone("01712345678", "international") == "+8801712345678"
        assert validator.format_phone("+8801712345678", "local") == "01712345678"
        assert validator.format_phone("01712345678", "display") == "+880 171 234 5678"

    def test_format_invalid_returns_input(self, validator):
        assert validator.format_phone("abc", "display") == "abc"

    def test_operator_info(self, validator):
        info = validator.get_operator_info("01812345678")
        assert info == {"operator": "Robi", "prefix": "018", "network": "2G/3G/4G"}
        assert validator.get_operator_info("0212345678") is None

    def test_is_operator_case_insensitive(self, validator):
        assert validator.is_operator("01712345678", "grameenphone")
        assert not validator.is_operator("01712345678", "Robi")

    def test_normalize_shortcut(self):
        assert normalize_phone("01912345678") == "+8801912345678"
        assert normalize_phone("nope") is None

    def test_supported_operators(self):
        prefixes = {op["prefix"] for op in phone_validator.supported_operators()}
        assert {"013", "014", "015", "016", "017", "018", "019"} <= prefixes

    def test_validation_stats(self, validator):
        stats = validator.validation_stats(["01712345678", "+8801812345678", "0212345678", "bad"])
        assert stats["total"] == 4
        assert stats["valid"] == 3
        assert stats["invalid"] == 1
        assert stats["mobile"] == 2
        assert stats["landline"] == 1
        assert stats["operators"] == {"Grameenphone": 1, "Robi": 1}
        assert stats["formats"]["international"] == 1
        assert stats["formats"]["local"] == 2
