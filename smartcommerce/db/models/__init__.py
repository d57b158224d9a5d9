"""SQLAlchemy models for SmartCommerce.

This package contains the ORM models behind authentication and addresses:

- User: email/phone password accounts with role and status
- Address: Bangladesh addresses with one default per user
- UserSession: database fallback rows for Redis sessions
- PhoneOTP: SMS verification codes
- EmailToken: email verification and password reset links
- PasswordHistory: previous password hashes

Usage:
    from smartcommerce.db.models import User, UserStatus

    user = User(
        email="rahim@example.com",
        password_hash=hashed,
        first_name="Rahim",
        last_name="Uddin",
    )
"""

from .address import Address, AddressType, Division
from .email_token import EmailToken, EmailTokenPurpose
from .base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, utcnow
from .password_history import PasswordHistory
from .phone_otp import PhoneOTP
from .user import User, UserRole, UserStatus
from .user_session import UserSession

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "UTCDateTime",
    "utcnow",
    # Models
    "User",
    "UserRole",
    "UserStatus",
    "Address",
    "AddressType",
    "Division",
    "UserSession",
    "PhoneOTP",
    "EmailToken",
    "EmailTokenPurpose",
    "PasswordHistory",
]
