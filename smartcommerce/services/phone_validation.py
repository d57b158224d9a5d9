"""Bangladesh phone number validation.

Covers the national numbering plan as used at registration, login and OTP
delivery:

- Mobile: ``+8801[3-9]XXXXXXXX``, ``8801…`` or local ``01…``; the
  operator is derived from the three-digit prefix.
- Landline: ``02`` (Dhaka) and the divisional area codes.
- Special numbers (emergency, toll-free, premium, corporate), only when
  explicitly allowed.

Every accepted number is normalized to ``+880…``.

Example:
    ```python
    result = phone_validator.validate("017-1234-5678")
    result.normalized_phone   # "+8801712345678"
    result.operator           # "Grameenphone"
    ```
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)


MOBILE_OPERATORS: Dict[str, Dict[str, str]] = {
    "013": {"name": "Teletalk", "network": "2G/3G"},
    "014": {"name": "Banglalink", "network": "2G/3G/4G"},
    "015": {"name": "Teletalk", "network": "2G/3G"},
    "016": {"name": "Airtel", "network": "2G/3G/4G"},
    "017": {"name": "Grameenphone", "network": "2G/3G/4G/5G"},
    "018": {"name": "Robi", "network": "2G/3G/4G"},
    "019": {"name": "Banglalink", "network": "2G/3G/4G"},
}

LANDLINE_AREA_CODES: Dict[str, Dict[str, str]] = {
    "02": {"area": "Dhaka", "region": "Central"},
    "031": {"area": "Chittagong", "region": "Southeast"},
    "041": {"area": "Khulna", "region": "Southwest"},
    "051": {"area": "Rajshahi", "region": "Northwest"},
    "061": {"area": "Sylhet", "region": "Northeast"},
    "071": {"area": "Barisal", "region": "South"},
    "081": {"area": "Rangpur", "region": "North"},
    "091": {"area": "Mymensingh", "region": "North-central"},
}

SPECIAL_NUMBERS: Dict[str, Dict[str, Any]] = {
    "emergency": {
        "patterns": [re.compile(r"^(999|100|101|102)$")],
        "description": "Emergency Services",
    },
    "toll_free": {
        "patterns": [re.compile(r"^800\d{7}$")],
        "description": "Toll-Free Numbers",
    },
    "premium": {
        "patterns": [re.compile(r"^900\d{7}$")],
        "description": "Premium Rate Numbers",
    },
    "corporate": {
        "patterns": [re.compile(r"^1\d{8}$")],
        "description": "Corporate Numbers",
    },
}

_MOBILE_PATTERN = re.compile(r"^(?:\+880|880|0)?(1[3-9]\d{8})$")
_MOBILE_FORMS = (
    re.compile(r"^\+8801[3-9]\d{8}$"),
    re.compile(r"^8801[3-9]\d{8}$"),
    re.compile(r"^01[3-9]\d{8}$"),
)
# Dhaka numbers have 8 subscriber digits, other areas 7
_LANDLINE_PATTERN = re.compile(
    r"^(?:\+880|880|0)(2[1-9]\d{7}|(?:31|41|51|61|71|81|91)\d{7})$"
)

FORMAT_SUGGESTIONS = [
    "+8801XXXXXXXXX (International format)",
    "01XXXXXXXXX (Local format)",
    "+8802XXXXXXXX (Landline international)",
    "02XXXXXXXX (Landline local)",
]

VALID_EXAMPLES = {
    "mobile": ["+8801712345678", "01712345678", "+8801812345678", "01812345678"],
    "landline": ["+880212345678", "0212345678", "+880311234567", "0311234567"],
}

USE_CASES = ("registration", "otp", "sms", "verification", "login")


@dataclass
class PhoneValidationResult:
    """Outcome of validating one phone number.

    Invalid results carry ``code`` (INVALID_INPUT, EMPTY_PHONE,
    INVALID_FORMAT, UNSUPPORTED_OPERATOR, MOBILE_ONLY) and bilingual
    ``error``/``error_bn`` messages.
    """

    is_valid: bool
    original_phone: Optional[str] = None
    normalized_phone: Optional[str] = None
    type: Optional[str] = None
    format: Optional[str] = None
    operator: Optional[str] = None
    operator_prefix: Optional[str] = None
    network: Optional[str] = None
    area_code: Optional[str] = None
    area_info: Optional[Dict[str, str]] = None
    special_type: Optional[str] = None
    description: Optional[str] = None
    error: Optional[str] = None
    error_bn: Optional[str] = None
    code: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    examples: Dict[str, List[str]] = field(default_factory=dict)
    supported_operators: List[str] = field(default_factory=list)
    # Use-case flags
    can_receive_sms: Optional[bool] = None
    can_receive_otp: Optional[bool] = None
    requires_verification: Optional[bool] = None
    is_verifiable: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, dropping unset optional fields."""
        return {k: v for k, v in asdict(self).items() if v not in (None, [], {})}


def _invalid(code: str, error: str, error_bn: str, **kwargs: Any) -> PhoneValidationResult:
    return PhoneValidationResult(is_valid=False, code=code, error=error, error_bn=error_bn, **kwargs)


class PhoneValidator:
    """Validator for the Bangladesh numbering plan."""

    def validate(
        self,
        phone: Any,
        allow_landline: bool = True,
        allow_mobile: bool = True,
        allow_special: bool = False,
    ) -> PhoneValidationResult:
        """Validate and normalize a phone number.

        Special numbers are checked first (when allowed), then mobile, then
        landline.
        """
        if not phone or not isinstance(phone, str):
            return _invalid(
                "INVALID_INPUT",
                "Phone number is required and must be a string",
                "ফোন নম্বর প্রয়োজনীয় এবং এটি একটি স্ট্রিং হতে হবে",
            )

        clean = re.sub(r"[^\d+]", "", phone)
        if not clean:
            return _invalid(
                "EMPTY_PHONE",
                "Phone number cannot be empty",
                "ফোন নম্বর খালি হতে পারে না",
            )

        if allow_special:
            result = self._validate_special(clean)
            if result is not None:
                result.original_phone = phone
                return result

        if allow_mobile and any(p.match(clean) for p in _MOBILE_FORMS):
            result = self._validate_mobile(clean)
            result.original_phone = phone
            return result

        if allow_landline:
            result = self._validate_landline(clean)
            if result is not None:
                result.original_phone = phone
                return result

        return _invalid(
            "INVALID_FORMAT",
            "Invalid Bangladesh phone number format",
            "অবৈধ বাংলাদেশ ফোন নম্বর ফরম্যাট",
            original_phone=phone,
            suggestions=list(FORMAT_SUGGESTIONS),
            examples={k: list(v) for k, v in VALID_EXAMPLES.items()},
        )

    def _validate_mobile(self, clean: str) -> PhoneValidationResult:
        subscriber = _MOBILE_PATTERN.match(clean).group(1)
        normalized = f"+880{subscriber}"
        prefix = "0" + subscriber[:2]
        operator = MOBILE_OPERATORS.get(prefix)
        if operator is None:
            return _invalid(
                "UNSUPPORTED_OPERATOR",
                "Unsupported mobile operator",
                "অসমর্থিত মোবাইল অপারেটর",
                supported_operators=sorted({op["name"] for op in MOBILE_OPERATORS.values()}),
            )
        return PhoneValidationResult(
            is_valid=True,
            normalized_phone=normalized,
            type="mobile",
            format=self.detect_format(clean),
            operator=operator["name"],
            operator_prefix=prefix,
            network=operator["network"],
        )

    def _validate_landline(self, clean: str) -> Optional[PhoneValidationResult]:
        match = _LANDLINE_PATTERN.match(clean)
        if not match:
            return None
        subscriber = match.group(1)
        area_code = "02" if subscriber.startswith("2") else "0" + subscriber[:2]
        return PhoneValidationResult(
            is_valid=True,
            normalized_phone=f"+880{subscriber}",
            type="landline",
            format=self.detect_format(clean),
            area_code=area_code,
            area_info=dict(LANDLINE_AREA_CODES.get(area_code, {"area": "Unknown", "region": "Unknown"})),
        )

    def _validate_special(self, clean: str) -> Optional[PhoneValidationResult]:
        for special_type, info in SPECIAL_NUMBERS.items():
            if any(p.match(clean) for p in info["patterns"]):
                return PhoneValidationResult(
                    is_valid=True,
                    normalized_phone=clean,
                    type="special",
                    special_type=special_type,
                    description=info["description"],
                )
        return None

    @staticmethod
    def detect_format(phone: str) -> str:
        if phone.startswith("+880"):
            return "international"
        if phone.startswith("880"):
            return "country_code"
        if phone.startswith("0"):
            return "local"
        return "unknown"

    def normalize(self, phone: str) -> Optional[str]:
        """Normalized ``+880…`` form, or None when invalid."""
        result = self.validate(phone)
        return result.normalized_phone if result.is_valid else None

    def format_phone(self, phone: str, fmt: str = "display") -> str:
        """Format a number as ``international``, ``local`` or ``display``.

        Invalid input is returned unchanged.
        """
        result = self.validate(phone)
        if not result.is_valid:
            return phone

        normalized = result.normalized_phone
        if fmt == "international" or not normalized.startswith("+880"):
            return normalized
        if fmt == "local":
            return "0" + normalized[4:]
        if fmt == "display":
            rest = normalized[4:]
            if result.type == "mobile":
                return f"+880 {rest[:3]} {rest[3:6]} {rest[6:10]}"
            if result.type == "landline":
                return f"+880 {rest[:2]} {rest[2:6]} {rest[6:10]}"
        return normalized

    def get_operator_info(self, phone: str) -> Optional[Dict[str, str]]:
        result = self.validate(phone)
        if not result.is_valid or result.type != "mobile":
            return None
        return {
            "operator": result.operator,
            "prefix": result.operator_prefix,
            "network": result.network,
        }

    def is_operator(self, phone: str, operator: str) -> bool:
        info = self.get_operator_info(phone)
        return bool(info) and info["operator"].lower() == operator.lower()

    @staticmethod
    def supported_operators() -> List[Dict[str, str]]:
        return [{"prefix": prefix, **info} for prefix, info in MOBILE_OPERATORS.items()]

    @staticmethod
    def supported_landline_areas() -> List[Dict[str, str]]:
        return [{"code": code, **info} for code, info in LANDLINE_AREA_CODES.items()]

    def validate_for_use_case(self, phone: Any, use_case: str) -> PhoneValidationResult:
        """Validate with rules for ``registration``, ``otp``, ``sms`` or ``verification``.

        OTP and SMS delivery accept mobile numbers only.
        """
        sms_only = use_case in ("otp", "sms")
        result = self.validate(phone, allow_landline=True, allow_special=False)
        if not result.is_valid:
            return result

        if sms_only and result.type != "mobile":
            return _invalid(
                "MOBILE_ONLY",
                "Only mobile numbers can receive SMS/OTP",
                "শুধুমাত্র মোবাইল নম্বর SMS/OTP পেতে পারে",
                original_phone=result.original_phone,
            )
        if use_case == "registration":
            result.can_receive_sms = result.type == "mobile"
            result.can_receive_otp = result.type == "mobile"
            result.requires_verification = True
        elif use_case == "verification":
            result.is_verifiable = True
        return result

    def validation_stats(self, numbers: Iterable[str]) -> Dict[str, Any]:
        """Aggregate counts by validity, type, operator, area and format."""
        numbers = list(numbers)
        stats: Dict[str, Any] = {
            "total": len(numbers),
            "valid": 0,
            "invalid": 0,
            "mobile": 0,
            "landline": 0,
            "special": 0,
            "operators": {},
            "areas": {},
            "formats": {"international": 0, "local": 0, "country_code": 0},
        }
        for number in numbers:
            result = self.validate(number)
            if not result.is_valid:
                stats["invalid"] += 1
                continue
            stats["valid"] += 1
            stats[result.type] += 1
            if result.format in stats["formats"]:
                stats["formats"][result.format] += 1
            if result.operator:
                stats["operators"][result.operator] = stats["operators"].get(result.operator, 0) + 1
            if result.area_code:
                stats["areas"][result.area_code] = stats["areas"].get(result.area_code, 0) + 1
        return stats


phone_validator = PhoneValidator()


def normalize_phone(phone: str) -> Optional[str]:
    """Module-level shortcut for ``phone_validator.normalize``."""
    return phone_validator.normalize(phone)
