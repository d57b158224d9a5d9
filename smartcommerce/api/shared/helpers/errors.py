"""Error handling utilities for API responses.

Provides safe, bilingual (English/Bengali) error messages that don't leak
internal implementation details, with standardized codes for support and
client handling.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


# =============================================================================
# Error Codes - Machine-readable codes for client handling and support
# =============================================================================


class ErrorCode(str, Enum):
    """Standardized error codes for API responses.

    Format: ERR_{CATEGORY}_{NUMBER}
    Categories:
    - AUTH: Authentication and authorization
    - SESSION: Server-side sessions and remember-me tokens
    - LOGIN: Brute-force protection
    - OTP: Phone verification codes
    - EMAIL: Email verification and password reset links
    - PHONE: Phone number validation
    - PASSWORD: Password policy
    - ADDRESS: Addresses and locations
    - VAL: Request validation
    - RES: Resource (not found, conflict)
    - LIMIT: Rate limiting
    - SYS: System/server errors
    """

    # Authentication errors
    AUTH_MISSING_TOKEN = "ERR_AUTH_001"
    AUTH_INVALID_TOKEN = "ERR_AUTH_002"
    AUTH_TOKEN_EXPIRED = "ERR_AUTH_003"
    AUTH_TOKEN_REVOKED = "ERR_AUTH_004"
    AUTH_INVALID_CREDENTIALS = "ERR_AUTH_005"
    AUTH_ACCOUNT_INACTIVE = "ERR_AUTH_006"
    AUTH_ACCOUNT_PENDING = "ERR_AUTH_007"
    AUTH_FORBIDDEN = "ERR_AUTH_008"
    AUTH_EMAIL_NOT_VERIFIED = "ERR_AUTH_009"
    AUTH_PHONE_NOT_VERIFIED = "ERR_AUTH_010"

    # Session errors
    SESSION_INVALID = "ERR_SESSION_001"
    SESSION_REQUIRED = "ERR_SESSION_002"
    SESSION_NOT_FRESH = "ERR_SESSION_003"
    SESSION_INSUFFICIENT_LEVEL = "ERR_SESSION_004"
    SESSION_REMEMBER_ME_INVALID = "ERR_SESSION_005"

    # Login protection errors
    LOGIN_IP_BLOCKED = "ERR_LOGIN_001"
    LOGIN_ACCOUNT_LOCKED = "ERR_LOGIN_002"
    LOGIN_DELAY_REQUIRED = "ERR_LOGIN_003"
    LOGIN_CAPTCHA_REQUIRED = "ERR_LOGIN_004"

    # OTP errors
    OTP_INVALID = "ERR_OTP_001"
    OTP_MAX_ATTEMPTS = "ERR_OTP_002"
    OTP_RATE_LIMITED = "ERR_OTP_003"
    OTP_RESEND_TOO_SOON = "ERR_OTP_004"
    OTP_SEND_FAILED = "ERR_OTP_005"

    # Email link errors
    EMAIL_TOKEN_INVALID = "ERR_EMAIL_001"
    EMAIL_TOKEN_EXPIRED = "ERR_EMAIL_002"
    EMAIL_ALREADY_VERIFIED = "ERR_EMAIL_003"
    EMAIL_RESEND_TOO_SOON = "ERR_EMAIL_004"
    EMAIL_SEND_FAILED = "ERR_EMAIL_005"

    # Phone errors
    PHONE_INVALID = "ERR_PHONE_001"
    PHONE_MOBILE_ONLY = "ERR_PHONE_002"

    # Password errors
    PASSWORD_WEAK = "ERR_PASSWORD_001"
    PASSWORD_REUSED = "ERR_PASSWORD_002"
    PASSWORD_INCORRECT = "ERR_PASSWORD_003"

    # Address errors
    ADDRESS_INVALID = "ERR_ADDRESS_001"
    ADDRESS_NOT_FOUND = "ERR_ADDRESS_002"
    LOCATION_NOT_FOUND = "ERR_ADDRESS_003"

    # Validation errors
    VAL_INVALID_FORMAT = "ERR_VAL_001"
    VAL_REQUIRED_FIELD = "ERR_VAL_002"

    # Resource errors
    RES_NOT_FOUND = "ERR_RES_001"
    RES_ALREADY_EXISTS = "ERR_RES_002"

    # Rate limiting errors
    LIMIT_RATE_EXCEEDED = "ERR_LIMIT_001"

    # System errors
    SYS_INTERNAL_ERROR = "ERR_SYS_001"
    SYS_DATABASE_ERROR = "ERR_SYS_002"
    SYS_SERVICE_UNAVAILABLE = "ERR_SYS_003"

    # Generic
    UNKNOWN = "ERR_UNKNOWN"


# =============================================================================
# Error Information Dataclass
# =============================================================================


@dataclass
class ErrorInfo:
    """Complete error information for API responses."""

    code: ErrorCode
    message: str
    message_bn: str
    action: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# Error Messages with Codes
# =============================================================================


ERROR_REGISTRY: Dict[ErrorCode, ErrorInfo] = {
    # Authentication errors
    ErrorCode.AUTH_MISSING_TOKEN: ErrorInfo(
        code=ErrorCode.AUTH_MISSING_TOKEN,
        message="Authentication required.",
        message_bn="প্রমাণীকরণ প্রয়োজন।",
        action="Please sign in to access this resource.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.AUTH_INVALID_TOKEN: ErrorInfo(
        code=ErrorCode.AUTH_INVALID_TOKEN,
        message="Invalid authentication token.",
        message_bn="অবৈধ প্রমাণীকরণ টোকেন।",
        action="Please sign out and sign in again.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.AUTH_TOKEN_EXPIRED: ErrorInfo(
        code=ErrorCode.AUTH_TOKEN_EXPIRED,
        message="Your access token has expired.",
        message_bn="আপনার অ্যাক্সেস টোকেনের মেয়াদ শেষ হয়েছে।",
        action="Refresh the token or sign in again.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.AUTH_TOKEN_REVOKED: ErrorInfo(
        code=ErrorCode.AUTH_TOKEN_REVOKED,
        message="This token has been revoked.",
        message_bn="এই টোকেনটি বাতিল করা হয়েছে।",
        action="Please sign in again.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.AUTH_INVALID_CREDENTIALS: ErrorInfo(
        code=ErrorCode.AUTH_INVALID_CREDENTIALS,
        message="Invalid credentials.",
        message_bn="ভুল তথ্য দেওয়া হয়েছে।",
        action="Check your email or phone number and password.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.AUTH_ACCOUNT_INACTIVE: ErrorInfo(
        code=ErrorCode.AUTH_ACCOUNT_INACTIVE,
        message="Account is deactivated.",
        message_bn="অ্যাকাউন্টটি নিষ্ক্রিয় করা হয়েছে।",
        action="Contact support to reactivate your account.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.AUTH_ACCOUNT_PENDING: ErrorInfo(
        code=ErrorCode.AUTH_ACCOUNT_PENDING,
        message="Account verification is pending.",
        message_bn="অ্যাকাউন্ট যাচাই এখনও বাকি আছে।",
        action="Verify your phone number with the OTP we sent you.",
        status_code=status.HTTP_403_FORBIDDEN,
    ),
    ErrorCode.AUTH_FORBIDDEN: ErrorInfo(
        code=ErrorCode.AUTH_FORBIDDEN,
        message="You do not have permission to perform this action.",
        message_bn="এই কাজটি করার অনুমতি আপনার নেই।",
        action="Contact an administrator if you believe this is an error.",
        status_code=status.HTTP_403_FORBIDDEN,
    ),
    ErrorCode.AUTH_EMAIL_NOT_VERIFIED: ErrorInfo(
        code=ErrorCode.AUTH_EMAIL_NOT_VERIFIED,
        message="Email verification required.",
        message_bn="ইমেইল যাচাই প্রয়োজন।",
        action="Verify your email address to continue.",
        status_code=status.HTTP_403_FORBIDDEN,
    ),
    ErrorCode.AUTH_PHONE_NOT_VERIFIED: ErrorInfo(
        code=ErrorCode.AUTH_PHONE_NOT_VERIFIED,
        message="Phone verification required.",
        message_bn="ফোন নম্বর যাচাই প্রয়োজন।",
        action="Verify your phone number with an OTP to continue.",
        status_code=status.HTTP_403_FORBIDDEN,
    ),
    # Session errors
    ErrorCode.SESSION_INVALID: ErrorInfo(
        code=ErrorCode.SESSION_INVALID,
        message="Invalid or expired session.",
        message_bn="অবৈধ বা মেয়াদোত্তীর্ণ সেশন।",
        action="Please sign in again.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.SESSION_REQUIRED: ErrorInfo(
        code=ErrorCode.SESSION_REQUIRED,
        message="Session required.",
        message_bn="সেশন প্রয়োজন।",
        action="Sign in to start a session.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.SESSION_NOT_FRESH: ErrorInfo(
        code=ErrorCode.SESSION_NOT_FRESH,
        message="Recent authentication required.",
        message_bn="সম্প্রতি লগইন করা প্রয়োজন।",
        action="Sign in again to perform this sensitive action.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    ErrorCode.SESSION_INSUFFICIENT_LEVEL: ErrorInfo(
        code=ErrorCode.SESSION_INSUFFICIENT_LEVEL,
        message="Insufficient session security level.",
        message_bn="সেশনের নিরাপত্তা স্তর যথেষ্ট নয়।",
        action="Re-authenticate with a stronger method.",
        status_code=status.HTTP_403_FORBIDDEN,
    ),
    ErrorCode.SESSION_REMEMBER_ME_INVALID: ErrorInfo(
        code=ErrorCode.SESSION_REMEMBER_ME_INVALID,
        message="Invalid or expired remember-me token.",
        message_bn="অবৈধ বা মেয়াদোত্তীর্ণ রিমেম্বার-মি টোকেন।",
        action="Please sign in again.",
        status_code=status.HTTP_401_UNAUTHORIZED,
    ),
    # Login protection errors
    ErrorCode.LOGIN_IP_BLOCKED: ErrorInfo(
        code=ErrorCode.LOGIN_IP_BLOCKED,
        message="Too many failed login attempts from this network.",
        message_bn="এই নেটওয়ার্ক থেকে অনেকবার ব্যর্থ লগইন চেষ্টা হয়েছে।",
        action="Try again later.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    ErrorCode.LOGIN_ACCOUNT_LOCKED: ErrorInfo(
        code=ErrorCode.LOGIN_ACCOUNT_LOCKED,
        message="Account temporarily locked due to failed login attempts.",
        message_bn="ব্যর্থ লগইন চেষ্টার কারণে অ্যাকাউন্ট সাময়িকভাবে লক করা হয়েছে।",
        action="Wait for the lockout to expire or reset your password.",
        status_code=status.HTTP_423_LOCKED,
    ),
    ErrorCode.LOGIN_DELAY_REQUIRED: ErrorInfo(
        code=ErrorCode.LOGIN_DELAY_REQUIRED,
        message="Please wait before trying to log in again.",
        message_bn="আবার লগইন করার আগে অপেক্ষা করুন।",
        action="Wait a few seconds before retrying.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    ErrorCode.LOGIN_CAPTCHA_REQUIRED: ErrorInfo(
        code=ErrorCode.LOGIN_CAPTCHA_REQUIRED,
        message="CAPTCHA verification required.",
        message_bn="ক্যাপচা যাচাই প্রয়োজন।",
        action="Complete the CAPTCHA and try again.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    # OTP errors
    ErrorCode.OTP_INVALID: ErrorInfo(
        code=ErrorCode.OTP_INVALID,
        message="Invalid or expired OTP.",
        message_bn="অবৈধ বা মেয়াদোত্তীর্ণ OTP।",
        action="Request a new code and try again.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.OTP_MAX_ATTEMPTS: ErrorInfo(
        code=ErrorCode.OTP_MAX_ATTEMPTS,
        message="Maximum verification attempts exceeded.",
        message_bn="সর্বোচ্চ যাচাই চেষ্টা অতিক্রম করেছে।",
        action="Request a new code.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.OTP_RATE_LIMITED: ErrorInfo(
        code=ErrorCode.OTP_RATE_LIMITED,
        message="Too many OTP requests. Please try again later.",
        message_bn="অনেক বেশি OTP অনুরোধ। পরে আবার চেষ্টা করুন।",
        action="Wait an hour before requesting another code.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    ErrorCode.OTP_RESEND_TOO_SOON: ErrorInfo(
        code=ErrorCode.OTP_RESEND_TOO_SOON,
        message="Please wait before requesting a new OTP.",
        message_bn="নতুন OTP অনুরোধের আগে অপেক্ষা করুন।",
        action="Wait for the cooldown to finish.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    ErrorCode.OTP_SEND_FAILED: ErrorInfo(
        code=ErrorCode.OTP_SEND_FAILED,
        message="Failed to send OTP.",
        message_bn="OTP পাঠাতে ব্যর্থ হয়েছে।",
        action="Try again in a few minutes.",
        status_code=status.HTTP_502_BAD_GATEWAY,
    ),
    # Email link errors
    ErrorCode.EMAIL_TOKEN_INVALID: ErrorInfo(
        code=ErrorCode.EMAIL_TOKEN_INVALID,
        message="This link is invalid or has already been used.",
        message_bn="লিঙ্কটি অবৈধ বা ইতিমধ্যে ব্যবহার করা হয়েছে।",
        action="Request a new link.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.EMAIL_TOKEN_EXPIRED: ErrorInfo(
        code=ErrorCode.EMAIL_TOKEN_EXPIRED,
        message="This link has expired.",
        message_bn="লিঙ্কটির মেয়াদ শেষ হয়ে গেছে।",
        action="Request a new link.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.EMAIL_ALREADY_VERIFIED: ErrorInfo(
        code=ErrorCode.EMAIL_ALREADY_VERIFIED,
        message="Email has already been verified.",
        message_bn="ইমেল আগেই যাচাই করা হয়েছে।",
        action="Log in to continue.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.EMAIL_RESEND_TOO_SOON: ErrorInfo(
        code=ErrorCode.EMAIL_RESEND_TOO_SOON,
        message="Please wait before requesting another email.",
        message_bn="আরেকটি ইমেল অনুরোধের আগে অপেক্ষা করুন।",
        action="Check your inbox or wait for the cooldown to finish.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    ErrorCode.EMAIL_SEND_FAILED: ErrorInfo(
        code=ErrorCode.EMAIL_SEND_FAILED,
        message="Failed to send email.",
        message_bn="ইমেল পাঠাতে ব্যর্থ হয়েছে।",
        action="Try again in a few minutes.",
        status_code=status.HTTP_502_BAD_GATEWAY,
    ),
    # Phone errors
    ErrorCode.PHONE_INVALID: ErrorInfo(
        code=ErrorCode.PHONE_INVALID,
        message="Invalid Bangladesh phone number.",
        message_bn="অবৈধ বাংলাদেশী ফোন নম্বর।",
        action="Use a number like 01712345678 or +8801712345678.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.PHONE_MOBILE_ONLY: ErrorInfo(
        code=ErrorCode.PHONE_MOBILE_ONLY,
        message="Only mobile numbers are supported for this action.",
        message_bn="এই কাজের জন্য শুধুমাত্র মোবাইল নম্বর সমর্থিত।",
        action="Use a mobile number.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    # Password errors
    ErrorCode.PASSWORD_WEAK: ErrorInfo(
        code=ErrorCode.PASSWORD_WEAK,
        message="Password does not meet security requirements.",
        message_bn="পাসওয়ার্ড নিরাপত্তা প্রয়োজনীয়তা পূরণ করে না।",
        action="Follow the password policy and try again.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.PASSWORD_REUSED: ErrorInfo(
        code=ErrorCode.PASSWORD_REUSED,
        message="Password was used recently.",
        message_bn="এই পাসওয়ার্ডটি সম্প্রতি ব্যবহার করা হয়েছে।",
        action="Choose a password you have not used before.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    ErrorCode.PASSWORD_INCORRECT: ErrorInfo(
        code=ErrorCode.PASSWORD_INCORRECT,
        message="Current password is incorrect.",
        message_bn="বর্তমান পাসওয়ার্ড ভুল।",
        action="Re-enter your current password.",
        status_code=status.HTTP_400_BAD_REQUEST,
    ),
    # Address errors
    ErrorCode.ADDRESS_INVALID: ErrorInfo(
        code=ErrorCode.ADDRESS_INVALID,
        message="Invalid address.",
        message_bn="অবৈধ ঠিকানা।",
        action="Check the division, district and upazila selection.",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    ),
    ErrorCode.ADDRESS_NOT_FOUND: ErrorInfo(
        code=ErrorCode.ADDRESS_NOT_FOUND,
        message="Address not found.",
        message_bn="ঠিকানা পাওয়া যায়নি।",
        action="It may have been deleted.",
        status_code=status.HTTP_404_NOT_FOUND,
    ),
    ErrorCode.LOCATION_NOT_FOUND: ErrorInfo(
        code=ErrorCode.LOCATION_NOT_FOUND,
        message="Location not found.",
        message_bn="অবস্থান পাওয়া যায়নি।",
        action="Pick a division, district or upazila from the list.",
        status_code=status.HTTP_404_NOT_FOUND,
    ),
    # Validation errors
    ErrorCode.VAL_INVALID_FORMAT: ErrorInfo(
        code=ErrorCode.VAL_INVALID_FORMAT,
        message="Invalid input format.",
        message_bn="অবৈধ ইনপুট ফরম্যাট।",
        action="Please check the format and try again.",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    ),
    ErrorCode.VAL_REQUIRED_FIELD: ErrorInfo(
        code=ErrorCode.VAL_REQUIRED_FIELD,
        message="One or more required fields are missing.",
        message_bn="এক বা একাধিক প্রয়োজনীয় তথ্য অনুপস্থিত।",
        action="Please fill in all required fields and try again.",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    ),
    # Resource errors
    ErrorCode.RES_NOT_FOUND: ErrorInfo(
        code=ErrorCode.RES_NOT_FOUND,
        message="The requested resource was not found.",
        message_bn="অনুরোধকৃত তথ্য পাওয়া যায়নি।",
        action="It may have been deleted or you may not have access to it.",
        status_code=status.HTTP_404_NOT_FOUND,
    ),
    ErrorCode.RES_ALREADY_EXISTS: ErrorInfo(
        code=ErrorCode.RES_ALREADY_EXISTS,
        message="An account with this email or phone already exists.",
        message_bn="এই ইমেইল বা ফোন নম্বর দিয়ে ইতিমধ্যে একটি অ্যাকাউন্ট আছে।",
        action="Sign in instead, or use a different email or phone.",
        status_code=status.HTTP_409_CONFLICT,
    ),
    # Rate limiting errors
    ErrorCode.LIMIT_RATE_EXCEEDED: ErrorInfo(
        code=ErrorCode.LIMIT_RATE_EXCEEDED,
        message="Too many requests. Please slow down.",
        message_bn="অনেক বেশি অনুরোধ। অনুগ্রহ করে ধীরে চেষ্টা করুন।",
        action="Wait before trying again.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    # System errors
    ErrorCode.SYS_INTERNAL_ERROR: ErrorInfo(
        code=ErrorCode.SYS_INTERNAL_ERROR,
        message="An unexpected error occurred.",
        message_bn="একটি অপ্রত্যাশিত ত্রুটি ঘটেছে।",
        action="Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    ),
    ErrorCode.SYS_DATABASE_ERROR: ErrorInfo(
        code=ErrorCode.SYS_DATABASE_ERROR,
        message="A database error occurred.",
        message_bn="ডাটাবেস ত্রুটি ঘটেছে।",
        action="Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    ),
    ErrorCode.SYS_SERVICE_UNAVAILABLE: ErrorInfo(
        code=ErrorCode.SYS_SERVICE_UNAVAILABLE,
        message="Service temporarily unavailable.",
        message_bn="সেবাটি সাময়িকভাবে অনুপলব্ধ।",
        action="Please try again in a few minutes.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    ),
    # Unknown
    ErrorCode.UNKNOWN: ErrorInfo(
        code=ErrorCode.UNKNOWN,
        message="An error occurred.",
        message_bn="একটি ত্রুটি ঘটেছে।",
        action="Please try again.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    ),
}


# =============================================================================
# Error Code Based API
# =============================================================================


def get_error_info(error_code: ErrorCode) -> ErrorInfo:
    """Get error information for a given error code."""
    return ERROR_REGISTRY.get(error_code, ERROR_REGISTRY[ErrorCode.UNKNOWN])


def create_error_response(
    error_code: ErrorCode,
    detail: Optional[str] = None,
    detail_bn: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create a standardized error response dict.

    Args:
        error_code: The standardized error code
        detail: Optional English message (overrides the registry default)
        detail_bn: Optional Bengali message (overrides the registry default)
        extra: Additional machine-readable fields (retry_after, errors, ...)

    Returns:
        Dict with error, detail, detail_bn, error_code and action fields
    """
    error_info = get_error_info(error_code)
    body: Dict[str, Any] = {
        "error": error_code.name.lower(),
        "detail": detail or error_info.message,
        "detail_bn": detail_bn or error_info.message_bn,
        "error_code": error_code.value,
        "action": error_info.action,
    }
    if extra:
        body.update(extra)
    return body


class APIError(HTTPException):
    """HTTPException carrying an error code and bilingual messages.

    Response body:
    {
        "error": "error_type",
        "detail": "Human-readable message",
        "detail_bn": "Bengali message",
        "error_code": "ERR_XXX_NNN",
        "action": "What the user can do",
        ...extra
    }
    """

    def __init__(
        self,
        error_code: ErrorCode,
        detail: Optional[str] = None,
        detail_bn: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        error_info = get_error_info(error_code)
        self.error_code = error_code
        self.action = error_info.action

        super().__init__(
            status_code=error_info.status_code,
            detail=create_error_response(error_code, detail, detail_bn, extra),
            headers=headers,
        )

