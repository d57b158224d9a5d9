"""Unit tests for phone OTP generation and verification."""

import hashlib
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select, update

from smartcommerce.config import OTPConfig
from smartcommerce.db.models import PhoneOTP, UserStatus
from smartcommerce.db.models.base import utcnow
from smartcommerce.services.otp import OTPError, OTPService
from smartcommerce.services.sms import SMSResult

PHONE = "+8801712345678"


@pytest.fixture
def sms():
    mock = MagicMock()
    mock.send_otp = AsyncMock(return_value=SMSResult(success=True, phone=PHONE, mock=True))
    return mock


@pytest.fixture
def otp(db, sms):
    return OTPService(db, sms, OTPConfig())


def sent_code(sms) -> str:
    return sms.send_otp.call_args.args[1]


async def otp_rows(db):
    return (await db.execute(select(PhoneOTP).order_by(PhoneOTP.created_at))).scalars().all()


# =============================================================================
# Generate
# =============================================================================


class TestGenerate:
    async def test_sends_six_digits_and_stores_digest(self, otp, sms, db):
        result = await otp.generate(None, "01712345678")

        code = sent_code(sms)
        assert len(code) == 6 and code.isdigit()
        assert sms.send_otp.call_args.args[0] == PHONE
        assert result.success
        assert result.phone == PHONE
        assert result.operator == "Grameenphone"
        assert result.mock is True

        [row] = await otp_rows(db)
        assert row.otp_hash == hashlib.sha256(f"{PHONE}:{code}".encode()).hexdigest()
        assert code not in row.otp_hash
        assert timedelta(minutes=4) < row.expires_at - utcnow() <= timedelta(minutes=5)

    async def test_anonymous_request_attaches_to_phone_owner(self, otp, db, make_user):
        user = await make_user(phone=PHONE, status=UserStatus.PENDING)

        await otp.generate(None, PHONE)

        [row] = await otp_rows(db)
        assert row.user_id == user.id

    async def test_new_code_supersedes_pending_one(self, otp, sms):
        await otp.generate(None, PHONE)
        first = sent_code(sms)
        await otp.generate(None, PHONE)

        with pytest.raises(OTPError) as exc_info:
            await otp.verify(None, PHONE, first)
        assert exc_info.value.code == "INVALID_OTP"

    async def test_hourly_limit(self, otp):
        for _ in range(3):
            await otp.generate(None, PHONE)

        with pytest.raises(OTPError) as exc_info:
            await otp.generate(None, PHONE)
        assert exc_info.value.code == "RATE_LIMIT_EXCEEDED"
        assert exc_info.value.retry_after == 3600

    async def test_sms_failure_removes_record(self, db, sms):
        sms.send_otp.return_value = SMSResult(success=False, error="gateway down")
        service = OTPService(db, sms, OTPConfig())

        with pytest.raises(OTPError) as exc_info:
            await service.generate(None, PHONE)

        assert exc_info.value.code == "SMS_SEND_FAILED"
        assert await otp_rows(db) == []

    async def test_landline_rejected(self, otp, sms):
        with pytest.raises(OTPError) as exc_info:
            await otp.generate(None, "0212345678")
        assert exc_info.value.code == "MOBILE_ONLY"
        sms.send_otp.assert_not_called()

    async def test_invalid_phone(self, otp):
        with pytest.raises(OTPError) as exc_info:
            await otp.generate(None, "12345")
        assert exc_info.value.message_bn


# =============================================================================
# Verify
# =============================================================================


class TestVerify:
    async def test_success_activates_pending_user(self, otp, sms, db, make_user):
        user = await make_user(phone=PHONE, status=UserStatus.PENDING)
        await otp.generate(user.id, PHONE)

        result = await otp.verify(user.id, "017-1234-5678", sent_code(sms))

        assert result.success
        assert result.user_id == str(user.id)
        assert user.phone_verified is True
        assert user.status == UserStatus.ACTIVE
        [row] = await otp_rows(db)
        assert row.verified_at is not None
        assert row.attempts == 1

    async def test_suspended_user_stays_suspended(self, otp, sms, make_user):
        user = await make_user(phone=PHONE, status=UserStatus.SUSPENDED)
        await otp.generate(user.id, PHONE)

        await otp.verify(user.id, PHONE, sent_code(sms))

        assert user.status == UserStatus.SUSPENDED
        assert user.phone_verified is True

    async def test_wrong_code_counts_attempts(self, otp, sms):
        await otp.generate(None, PHONE)
        wrong = "000000" if sent_code(sms) != "000000" else "111111"

        remaining = []
        for _ in range(3):
            with pytest.raises(OTPError) as exc_info:
                await otp.verify(None, PHONE, wrong)
            remaining.append(exc_info.value.attempts_remaining)
        assert remaining == [2, 1, 0]

        with pytest.raises(OTPError) as exc_info:
            await otp.verify(None, PHONE, sent_code(sms))
        assert exc_info.value.code == "MAX_ATTEMPTS_EXCEEDED"

    async def test_no_pending_code(self, otp):
        with pytest.raises(OTPError) as exc_info:
            await otp.verify(None, PHONE, "123456")
        assert exc_info.value.code == "INVALID_OTP"
        assert exc_info.value.attempts_remaining is None

    async def test_expired_code(self, otp, sms, db):
        await otp.generate(None, PHONE)
        await db.execute(update(PhoneOTP).values(expires_at=utcnow() - timedelta(seconds=1)))
        await db.commit()

        with pytest.raises(OTPError) as exc_info:
            await otp.verify(None, PHONE, sent_code(sms))
        assert exc_info.value.code == "INVALID_OTP"

    async def test_code_is_single_use(self, otp, sms):
        await otp.generate(None, PHONE)
        code = sent_code(sms)
        await otp.verify(None, PHONE, code)

        with pytest.raises(OTPError):
            await otp.verify(None, PHONE, code)


# =============================================================================
# Resend and housekeeping
# =============================================================================


class TestResend:
    async def test_cooldown(self, otp):
        await otp.generate(None, PHONE)

        with pytest.raises(OTPError) as exc_info:
            await otp.resend(None, PHONE)

        assert exc_info.value.code == "RESEND_TOO_SOON"
        assert 110 <= exc_info.value.retry_after <= 120

    async def test_resend_after_cooldown(self, db, sms):
        service = OTPService(db, sms, OTPConfig(resend_cooldown_seconds=0))
        await service.generate(None, PHONE)

        result = await service.resend(None, PHONE)

        assert result.success
        assert sms.send_otp.await_count == 2


class TestHousekeeping:
    async def test_cleanup_removes_expired_pending_codes(self, otp, db):
        await otp.generate(None, PHONE)
        await otp.generate(None, PHONE)

        # The superseded code expired the moment the second was issued
        assert await otp.cleanup_expired() == 1
        count = (await db.execute(select(func.count()).select_from(PhoneOTP))).scalar_one()
        assert count == 1

    async def test_stats(self, otp, sms):
        await otp.generate(None, PHONE)
        await otp.generate(None, PHONE)
        await otp.verify(None, PHONE, sent_code(sms))

        stats = await otp.get_stats(PHONE, "1h")

        assert stats == {
            "phone": PHONE,
            "time_range": "1h",
            "total_otps": 2,
            "verified_otps": 1,
            "unverified_otps": 1,
        }

    async def test_unknown_time_range_defaults_to_a_day(self, otp):
        assert (await otp.get_stats(PHONE, "1y"))["time_range"] == "24h"

    async def test_is_phone_verified(self, otp, sms):
        assert await otp.is_phone_verified(PHONE) is False
        await otp.generate(None, PHONE)
        await otp.verify(None, PHONE, sent_code(sms))

        assert await otp.is_phone_verified("01712345678") is True
        assert await otp.is_phone_verified("not a phone") is False

    async def test_verified_user_counts(self, otp, make_user):
        await make_user(phone=PHONE, phone_verified=True)
        assert await otp.is_phone_verified(PHONE) is True
