"""Phone verification codes delivered by SMS.

Codes are six random digits, valid for five minutes, and stored only as a
SHA-256 digest. Limits per phone number: three codes per hour, three
verification attempts per code, and a two-minute cooldown between resends.
"""

import hashlib
import hmac
import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smartcommerce.config import OTPConfig, get_config
from smartcommerce.db.models import PhoneOTP, User, UserStatus
from smartcommerce.db.models.base import utcnow
from smartcommerce.logging_config import get_audit_logger, get_logger
from smartcommerce.services.phone_validation import phone_validator
from smartcommerce.services.sms import SMSService

logger = get_logger(__name__)
audit = get_audit_logger()

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}
# Verified codes are kept this long as proof of verification
VERIFIED_RETENTION = timedelta(days=30)


class OTPError(Exception):
    """OTP request or verification refused.

    ``code`` is one of INVALID_PHONE/MOBILE_ONLY, RATE_LIMIT_EXCEEDED,
    RESEND_TOO_SOON, SMS_SEND_FAILED, INVALID_OTP, MAX_ATTEMPTS_EXCEEDED.
    """

    def __init__(
        self,
        code: str,
        message: str,
        message_bn: str,
        retry_after: Optional[int] = None,
        attempts_remaining: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.message_bn = message_bn
        self.retry_after = retry_after
        self.attempts_remaining = attempts_remaining
        super().__init__(message)


@dataclass
class OTPResult:
    success: bool
    phone: str
    message: str
    message_bn: str
    operator: Optional[str] = None
    expires_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    user_id: Optional[str] = None
    mock: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("expires_at", "verified_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return {k: v for k, v in data.items() if v is not None}


def _hash_code(phone: str, code: str) -> str:
    return hashlib.sha256(f"{phone}:{code}".encode("utf-8")).hexdigest()


class OTPService:
    """Issues and verifies phone OTPs within one database session."""

    def __init__(self, db: AsyncSession, sms: Optional[SMSService] = None, config: Optional[OTPConfig] = None):
        self.db = db
        self.sms = sms or SMSService()
        self.config = config or get_config().otp

    def generate_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.config.length):0{self.config.length}d}"

    @staticmethod
    def _normalize(phone: str) -> tuple:
        validation = phone_validator.validate_for_use_case(phone, "otp")
        if not validation.is_valid:
            raise OTPError(validation.code or "INVALID_PHONE", validation.error, validation.error_bn)
        return validation.normalized_phone, validation.operator

    async def generate(self, user_id: Optional[UUID], phone: str) -> OTPResult:
        """Create a code, expire pending ones and send it by SMS.

        Raises:
            OTPError: Invalid phone, hourly limit reached, or SMS failure
        """
        normalized, operator = self._normalize(phone)
        now = utcnow()
        if user_id is None:
            # Anonymous requests for a registered number still belong to its owner
            user_id = (
                await self.db.execute(select(User.id).where(User.phone == normalized))
            ).scalar_one_or_none()

        recent = (
            await self.db.execute(
                select(func.count())
                .select_from(PhoneOTP)
                .where(PhoneOTP.phone == normalized, PhoneOTP.created_at >= now - timedelta(hours=1))
            )
        ).scalar_one()
        if recent >= self.config.max_per_hour:
            audit.warning("otp_rate_limit_exceeded", phone=normalized, user_id=str(user_id) if user_id else None, count=recent)
            raise OTPError(
                "RATE_LIMIT_EXCEEDED",
                "Too many OTP requests. Please try again later.",
                "অত্যধিক OTP অনুরোধ। অনুগ্রহ করে পরে চেষ্টা করুন।",
                retry_after=3600,
            )

        # Superseded codes are expired, not deleted, so they still count
        # towards the hourly limit until cleanup removes them
        await self.db.execute(
            update(PhoneOTP)
            .where(
                PhoneOTP.phone == normalized,
                PhoneOTP.verified_at.is_(None),
                PhoneOTP.expires_at > now,
            )
            .values(expires_at=now)
        )

        code = self.generate_code()
        record = PhoneOTP(
            user_id=user_id,
            phone=normalized,
            otp_hash=_hash_code(normalized, code),
            attempts=0,
            expires_at=now + timedelta(seconds=self.config.expiry_seconds),
            created_at=now,
        )
        self.db.add(record)
        await self.db.flush()

        sms_result = await self.sms.send_otp(normalized, code)
        if not sms_result.success:
            await self.db.delete(record)
            await self.db.commit()
            logger.error(f"OTP SMS delivery failed: {sms_result.error}", extra={"phone": normalized})
            raise OTPError(
                "SMS_SEND_FAILED",
                "Failed to send OTP via SMS",
                "SMS এর মাধ্যমে OTP পাঠানো ব্যর্থ হয়েছে",
            )

        await self.db.commit()
        logger.info(
            "OTP generated and sent",
            extra={"phone": normalized, "operator": operator, "user_id": str(user_id) if user_id else None},
        )
        return OTPResult(
            success=True,
            phone=normalized,
            operator=operator,
            expires_at=record.expires_at,
            message="OTP sent successfully",
            message_bn="OTP সফলভাবে পাঠানো হয়েছে",
            mock=sms_result.mock,
        )

    async def verify(self, user_id: Optional[UUID], phone: str, code: str) -> OTPResult:
        """Check ``code`` against the newest pending OTP for ``phone``.

        Every check counts as an attempt, whether or not the code matches.
        A match marks the OTP verified and the owning user as verified and
        ACTIVE.

        Raises:
            OTPError: INVALID_OTP or MAX_ATTEMPTS_EXCEEDED
        """
        normalized, _ = self._normalize(phone)
        now = utcnow()

        query = (
            select(PhoneOTP)
            .where(
                PhoneOTP.phone == normalized,
                PhoneOTP.verified_at.is_(None),
                PhoneOTP.expires_at > now,
            )
            .order_by(PhoneOTP.created_at.desc())
            .limit(1)
        )
        if user_id is not None:
            query = query.where(or_(PhoneOTP.user_id == user_id, PhoneOTP.user_id.is_(None)))
        record = (await self.db.execute(query)).scalar_one_or_none()

        if record is None:
            audit.warning("otp_invalid", phone=normalized, user_id=str(user_id) if user_id else None)
            raise OTPError("INVALID_OTP", "Invalid or expired OTP", "অবৈধ বা মেয়াদোত্তীর্ণ OTP")

        if record.attempts >= self.config.max_attempts:
            audit.warning("otp_max_attempts", phone=normalized, attempts=record.attempts)
            raise OTPError(
                "MAX_ATTEMPTS_EXCEEDED",
                "Maximum verification attempts exceeded. Please request a new OTP.",
                "সর্বাধিক যাচাই প্রচেষ্টা অতিক্রম করেছে। অনুগ্রহ করে নতুন OTP অনুরোধ করুন।",
            )

        record.attempts += 1
        if not hmac.compare_digest(record.otp_hash, _hash_code(normalized, (code or "").strip())):
            await self.db.commit()
            remaining = max(0, self.config.max_attempts - record.attempts)
            audit.warning("otp_invalid", phone=normalized, attempts=record.attempts)
            raise OTPError(
                "INVALID_OTP",
                "Invalid or expired OTP",
                "অবৈধ বা মেয়াদোত্তীর্ণ OTP",
                attempts_remaining=remaining,
            )

        record.verified_at = now
        owner_id = record.user_id or user_id
        if owner_id is not None:
            user = await self.db.get(User, owner_id)
            if user is not None:
                user.phone_verified = True
                if user.status == UserStatus.PENDING:
                    user.status = UserStatus.ACTIVE
        await self.db.commit()

        logger.info("OTP verified", extra={"phone": normalized, "user_id": str(owner_id) if owner_id else None})
        return OTPResult(
            success=True,
            phone=normalized,
            verified_at=now,
            user_id=str(owner_id) if owner_id else None,
            message="OTP verified successfully",
            message_bn="OTP সফলভাবে যাচাই হয়েছে",
        )

    async def resend(self, user_id: Optional[UUID], phone: str) -> OTPResult:
        """Issue a new code unless one was sent within the cooldown.

        Raises:
            OTPError: RESEND_TOO_SOON with ``retry_after`` seconds, or any
                error from ``generate``
        """
        normalized, _ = self._normalize(phone)
        now = utcnow()
        cooldown = timedelta(seconds=self.config.resend_cooldown_seconds)

        latest = (
            await self.db.execute(
                select(PhoneOTP)
                .where(
                    PhoneOTP.phone == normalized,
                    PhoneOTP.verified_at.is_(None),
                    PhoneOTP.expires_at > now,
                    PhoneOTP.created_at >= now - cooldown,
                )
                .order_by(PhoneOTP.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        if latest is not None:
            wait = max(1, int((latest.created_at + cooldown - now).total_seconds() + 0.999))
            raise OTPError(
                "RESEND_TOO_SOON",
                f"Please wait {wait} seconds before requesting another OTP",
                f"অন্য OTP অনুরোধ করার জন্য {wait} সেকেন্ড অপেক্ষা করুন",
                retry_after=wait,
            )
        return await self.generate(user_id, normalized)

    async def cleanup_expired(self) -> int:
        """Delete expired pending codes and old verified ones."""
        now = utcnow()
        result = await self.db.execute(
            delete(PhoneOTP).where(
                or_(
                    and_(PhoneOTP.verified_at.is_(None), PhoneOTP.expires_at < now),
                    PhoneOTP.verified_at < now - VERIFIED_RETENTION,
                )
            )
        )
        await self.db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Cleaned up {deleted} OTP records", extra={"deleted_count": deleted})
        return deleted

    async def get_stats(self, phone: str, time_range: str = "24h") -> Dict[str, Any]:
        normalized, _ = self._normalize(phone)
        since = utcnow() - TIME_RANGES.get(time_range, TIME_RANGES["24h"])

        total, verified = (
            await self.db.execute(
                select(func.count(PhoneOTP.id), func.count(PhoneOTP.verified_at)).where(
                    PhoneOTP.phone == normalized, PhoneOTP.created_at >= since
                )
            )
        ).one()
        return {
            "phone": normalized,
            "time_range": time_range if time_range in TIME_RANGES else "24h",
            "total_otps": total,
            "verified_otps": verified,
            "unverified_otps": total - verified,
        }

    async def is_phone_verified(self, phone: str) -> bool:
        validation = phone_validator.validate_for_use_case(phone, "verification")
        if not validation.is_valid:
            return False
        normalized = validation.normalized_phone

        user_verified = (
            await self.db.execute(
                select(User.id).where(User.phone == normalized, User.phone_verified.is_(True)).limit(1)
            )
        ).scalar_one_or_none()
        if user_verified is not None:
            return True

        otp_verified = (
            await self.db.execute(
                select(PhoneOTP.id).where(PhoneOTP.phone == normalized, PhoneOTP.verified_at.is_not(None)).limit(1)
            )
        ).scalar_one_or_none()
        return otp_verified is not None
