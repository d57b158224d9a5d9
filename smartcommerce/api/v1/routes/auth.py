"""Authentication API routes.

Registration, login and logout, access token refresh, phone OTP and
email link verification, password management and remember-me tokens.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, EmailStr, Field, model_validator
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from smartcommerce.api.shared.auth import (
    get_current_user,
    get_optional_session,
    get_optional_user,
    get_session_id,
    user_payload,
)
from smartcommerce.api.shared.dependencies import (
    get_address_service,
    get_email_service,
    get_email_token_service,
    get_login_security_service,
    get_otp_service,
    get_password_service,
    get_session_service,
    get_token_service,
)
from smartcommerce.api.shared.helpers import APIError, ErrorCode, get_request_meta
from smartcommerce.api.shared.helpers.cookies import (
    REMEMBER_ME_COOKIE,
    apply_session,
    clear_remember_me_cookies,
    clear_session_cookie,
)
from smartcommerce.api.shared.middleware.rate_limit import rate_limit
from smartcommerce.api.v1.routes.addresses import address_invalid_error
from smartcommerce.config import get_config
from smartcommerce.db.models import EmailTokenPurpose, User, UserStatus
from smartcommerce.db.session import get_db
from smartcommerce.logging_config import get_audit_logger, get_logger
from smartcommerce.services.addresses import AddressService, validate_address
from smartcommerce.services.email import EmailResult, EmailService
from smartcommerce.services.email_tokens import EmailTokenError, EmailTokenService
from smartcommerce.services.login_security import LoginCheck, LoginSecurityService
from smartcommerce.services.otp import OTPError, OTPService
from smartcommerce.services.passwords import PasswordService
from smartcommerce.services.phone_validation import phone_validator
from smartcommerce.services.sessions import RequestMeta, SessionData, SessionService
from smartcommerce.services.tokens import TokenError, TokenService

logger = get_logger(__name__)
audit = get_audit_logger()

router = APIRouter(prefix="/auth", tags=["auth"])


# ============================================================================
# Request/Response Models
# ============================================================================


class RegisterRequest(BaseModel):
    """Account registration. At least one of email or phone is required."""

    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)

    # Optional first shipping address. Its contact phone defaults to the
    # account phone and must be a mobile number
    division: Optional[str] = None
    district: Optional[str] = None
    upazila: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    postal_code: Optional[str] = None
    address_phone: Optional[str] = Field(default=None, max_length=20)

    @model_validator(mode="after")
    def _check_identity(self) -> "RegisterRequest":
        if not self.email and not self.phone:
            raise ValueError("Either email or phone is required")
        return self


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email address or phone number")
    password: str = Field(..., min_length=1)
    remember_me: bool = False
    captcha: Optional[str] = None


class LogoutRequest(BaseModel):
    all_devices: bool = False


class RefreshTokenRequest(BaseModel):
    token: str


class PhoneRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=20)


class VerifyOTPRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=20)
    otp: str = Field(..., min_length=4, max_length=10)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str


class ValidatePasswordRequest(BaseModel):
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ValidatePhoneRequest(BaseModel):
    phone: str
    use_case: str = Field(default="registration", pattern="^(registration|otp|sms|verification)$")


class RememberMeRequest(BaseModel):
    token: Optional[str] = None


class EmailRequest(BaseModel):
    email: EmailStr


class EmailTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str


class AuthResponse(BaseModel):
    """Successful login."""

    message: str
    message_bn: str
    user: Dict[str, Any]
    token: str
    token_type: str = "Bearer"
    expires_in: int
    session_id: str
    session_expires_at: datetime
    max_age: int
    login_type: str
    remember_me: bool


# ============================================================================
# Helper Functions
# ============================================================================


_OTP_ERROR_CODES = {
    "RATE_LIMIT_EXCEEDED": ErrorCode.OTP_RATE_LIMITED,
    "RESEND_TOO_SOON": ErrorCode.OTP_RESEND_TOO_SOON,
    "SMS_SEND_FAILED": ErrorCode.OTP_SEND_FAILED,
    "INVALID_OTP": ErrorCode.OTP_INVALID,
    "MAX_ATTEMPTS_EXCEEDED": ErrorCode.OTP_MAX_ATTEMPTS,
    "MOBILE_ONLY": ErrorCode.PHONE_MOBILE_ONLY,
}


def otp_api_error(error: OTPError) -> APIError:
    """Translate an ``OTPError`` into the API error body."""
    code = _OTP_ERROR_CODES.get(error.code, ErrorCode.PHONE_INVALID)
    extra: Dict[str, Any] = {"code": error.code}
    headers = None
    if error.retry_after is not None:
        extra["retry_after"] = error.retry_after
        headers = {"Retry-After": str(error.retry_after)}
        if error.code == "RESEND_TOO_SOON":
            extra["wait_time"] = error.retry_after
    if error.attempts_remaining is not None:
        extra["attempts_remaining"] = error.attempts_remaining
    return APIError(code, detail=error.message, detail_bn=error.message_bn, headers=headers, extra=extra)


_EMAIL_TOKEN_ERROR_CODES = {
    "INVALID_TOKEN": ErrorCode.EMAIL_TOKEN_INVALID,
    "TOKEN_EXPIRED": ErrorCode.EMAIL_TOKEN_EXPIRED,
    "RESEND_TOO_SOON": ErrorCode.EMAIL_RESEND_TOO_SOON,
}


def email_token_api_error(error: EmailTokenError) -> APIError:
    code = _EMAIL_TOKEN_ERROR_CODES[error.code]
    if error.retry_after is None:
        return APIError(code)
    return APIError(
        code,
        headers={"Retry-After": str(error.retry_after)},
        extra={"retry_after": error.retry_after},
    )


async def send_verification_email(
    user: User,
    email_tokens: EmailTokenService,
    emails: EmailService,
    enforce_cooldown: bool = False,
) -> EmailResult:
    """Issue a verification token for ``user`` and mail the link.

    Raises:
        APIError: Resend requested within the cooldown, or delivery failed
    """
    try:
        issued = await email_tokens.issue(user.id, EmailTokenPurpose.VERIFY_EMAIL, enforce_cooldown=enforce_cooldown)
    except EmailTokenError as e:
        raise email_token_api_error(e)
    result = await emails.send_verification(user.email, issued.token, user.first_name)
    if not result.success:
        raise APIError(ErrorCode.EMAIL_SEND_FAILED, extra={"code": result.code})
    return result


def login_check_error(check: LoginCheck) -> APIError:
    headers = {"Retry-After": str(check.retry_after)} if check.retry_after else None
    if check.reason == "ip_blocked":
        return APIError(
            ErrorCode.LOGIN_IP_BLOCKED,
            headers=headers,
            extra={"retry_after": check.retry_after, "blocked_until": check.ip_block.expires_at},
        )
    if check.reason == "account_locked":
        return APIError(
            ErrorCode.LOGIN_ACCOUNT_LOCKED,
            headers=headers,
            extra={"retry_after": check.retry_after, "locked_until": check.lockout.expires_at},
        )
    if check.reason == "captcha_required":
        return APIError(ErrorCode.LOGIN_CAPTCHA_REQUIRED, extra={"captcha_required": True})
    return APIError(
        ErrorCode.LOGIN_DELAY_REQUIRED,
        headers=headers,
        extra={"retry_after": check.retry_after, "delay_ms": check.delay_ms},
    )


def normalize_identifier(identifier: str) -> tuple[str, str]:
    """Return ``(login_type, normalized_identifier)``.

    Identifiers containing ``@`` are emails; everything else must be a
    valid Bangladesh phone number.
    """
    identifier = identifier.strip()
    if "@" in identifier:
        return "email", identifier.lower()
    result = phone_validator.validate(identifier)
    if not result.is_valid:
        raise APIError(
            ErrorCode.PHONE_INVALID,
            detail=result.error,
            detail_bn=result.error_bn,
            extra={"code": result.code, "suggestions": result.suggestions},
        )
    return "phone", result.normalized_phone


def _invalid_credentials(login_type: str) -> APIError:
    if login_type == "email":
        return APIError(
            ErrorCode.AUTH_INVALID_CREDENTIALS,
            detail="Invalid email or password",
            detail_bn="অবৈধ ইমেল বা পাসওয়ার্ড",
        )
    return APIError(
        ErrorCode.AUTH_INVALID_CREDENTIALS,
        detail="Invalid phone or password",
        detail_bn="অবৈধ ফোন বা পাসওয়ার্ড",
    )


def _uuid_or_401(value: Any) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise APIError(ErrorCode.AUTH_INVALID_TOKEN)


def _remember_me_token(request: Request, body: Optional[RememberMeRequest]) -> Optional[str]:
    if body is not None and body.token:
        return body.token
    return request.cookies.get(REMEMBER_ME_COOKIE)


# ============================================================================
# Registration and login
# ============================================================================


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(rate_limit("auth"))])
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
    otp: OTPService = Depends(get_otp_service),
    addresses: AddressService = Depends(get_address_service),
    email_tokens: EmailTokenService = Depends(get_email_token_service),
    emails: EmailService = Depends(get_email_service),
) -> Dict[str, Any]:
    """Create an account.

    Accounts with a phone number stay PENDING until the OTP sent here is
    verified. Email-only accounts are active immediately; their
    ``email_verified`` flag stays false until the emailed link is used.
    An address, when any address field is given, is validated before the
    account is created and rejects the whole registration when invalid.
    With ``verification_required`` disabled every account is activated
    at once and no verification is sent.
    """
    if body.password != body.confirm_password:
        raise APIError(
            ErrorCode.VAL_INVALID_FORMAT,
            detail="Password and confirm password must match",
            detail_bn="পাসওয়ার্ড এবং নিশ্চিত পাসওয়ার্ড মিলতে হবে",
        )

    email = body.email.lower() if body.email else None
    phone = None
    operator = None
    if body.phone:
        phone_result = phone_validator.validate_for_use_case(body.phone, "registration")
        if not phone_result.is_valid:
            raise APIError(
                ErrorCode.PHONE_INVALID,
                detail=phone_result.error,
                detail_bn=phone_result.error_bn,
                extra={"code": phone_result.code, "suggestions": phone_result.suggestions},
            )
        phone = phone_result.normalized_phone
        operator = phone_result.operator

    strength = passwords.validate_strength(
        body.password,
        {"first_name": body.first_name, "last_name": body.last_name, "email": email, "phone": phone},
    )
    if not strength.is_valid:
        raise APIError(
            ErrorCode.PASSWORD_WEAK,
            extra={"details": strength.to_dict(), "password_policy": passwords.get_policy()},
        )

    address_payload = None
    address_fields = (body.division, body.district, body.upazila, body.address_line1, body.address_line2)
    if any(address_fields) or body.postal_code or body.address_phone:
        address_payload = {
            "first_name": body.first_name,
            "last_name": body.last_name,
            "phone": body.address_phone or phone,
            "address_line1": body.address_line1,
            "address_line2": body.address_line2,
            "division": body.division,
            "district": body.district,
            "upazila": body.upazila,
            "postal_code": body.postal_code,
            "is_default": True,
        }
        address_check = validate_address(address_payload)
        if not address_check.valid:
            raise address_invalid_error(address_check.errors)

    conditions = []
    if email:
        conditions.append(User.email == email)
    if phone:
        conditions.append(User.phone == phone)
    existing = (await db.execute(select(User).where(or_(*conditions)).limit(1))).scalar_one_or_none()
    if existing is not None:
        field = "email" if email and existing.email == email else "phone"
        raise APIError(
            ErrorCode.RES_ALREADY_EXISTS,
            detail="An account with this email or phone number already exists",
            detail_bn="এই ইমেল বা ফোন নম্বর দিয়ে একাউন্ট বিদ্যমান রয়েছে",
            extra={"field": field},
        )

    config = get_config()
    password_hash = await passwords.hash_password(body.password)
    user = User(
        email=email,
        phone=phone,
        password_hash=password_hash,
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        status=UserStatus.PENDING,
    )
    db.add(user)
    await db.flush()
    await passwords.record_password_history(user.id, password_hash, db)

    if address_payload is not None:
        await addresses.create_address(user.id, address_payload)

    # Sent before anything is committed so a failed delivery leaves no account
    requires_email_verification = bool(email) and config.verification_required
    email_mock = False
    if requires_email_verification:
        email_mock = (await send_verification_email(user, email_tokens, emails)).mock

    requires_phone_verification = bool(phone) and config.verification_required
    if requires_phone_verification:
        await db.commit()
        try:
            otp_result = await otp.generate(user.id, phone)
        except OTPError as e:
            await db.delete(user)
            await db.commit()
            raise otp_api_error(e)
        message = "Registration successful. Please check your phone for OTP verification."
        message_bn = "নিবন্ধন সফল। আপনার ফোনে OTP যাচাই করার জন্য চেক করুন।"
        extra: Dict[str, Any] = {
            "requires_phone_verification": True,
            "phone": phone,
            "operator": operator,
            "otp_expires_at": otp_result.expires_at.isoformat() if otp_result.expires_at else None,
        }
    else:
        user.status = UserStatus.ACTIVE
        if not config.verification_required:
            user.phone_verified = bool(phone)
            user.email_verified = bool(email)
        await db.flush()
        if requires_email_verification:
            message = "Registration successful. Please check your email to verify your address."
            message_bn = "নিবন্ধন সফল। আপনার ইমেল যাচাই করার জন্য ইনবক্স চেক করুন।"
        else:
            message = "Registration successful."
            message_bn = "নিবন্ধন সফল।"
        extra = {"requires_phone_verification": False}

    extra["requires_email_verification"] = requires_email_verification
    if email_mock:
        extra["email_mock"] = True

    audit.info("user_registered", user_id=str(user.id), has_email=bool(email), has_phone=bool(phone))
    return {
        "message": message,
        "message_bn": message_bn,
        "user": user_payload(user),
        **extra,
    }


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(rate_limit("auth"))])
async def login(
    body: LoginRequest,
    response: Response,
    meta: RequestMeta = Depends(get_request_meta),
    db: AsyncSession = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
    security: LoginSecurityService = Depends(get_login_security_service),
    sessions: SessionService = Depends(get_session_service),
    tokens: TokenService = Depends(get_token_service),
) -> AuthResponse:
    """Log in with email or phone and password.

    Order: brute-force checks, credential check, verification status,
    then session, cookies and access token.
    """
    try:
        login_type, identifier = normalize_identifier(body.identifier)
    except APIError:
        # Malformed identifiers still count against the client IP
        ip_block = await security.is_ip_blocked(meta.ip)
        if ip_block:
            raise login_check_error(
                LoginCheck(allowed=False, reason="ip_blocked", retry_after=ip_block.remaining_seconds, ip_block=ip_block)
            )
        await security.record_failed_ip_attempt(meta.ip, meta.user_agent)
        raise

    check = await security.check_login_allowed(identifier, meta.ip, meta.user_agent)
    if not check.allowed:
        if check.reason != "captcha_required" or not body.captcha:
            raise login_check_error(check)
        # CAPTCHA tokens are checked by the frontend provider; presence is required here
        logger.info("Login proceeding with CAPTCHA token", extra={"identifier": identifier})

    column = User.email if login_type == "email" else User.phone
    user = (await db.execute(select(User).where(column == identifier))).scalar_one_or_none()

    password_ok = await passwords.verify_password(body.password, user.password_hash if user else None)
    if user is None or not password_ok:
        result = await security.record_failed_attempt(
            identifier, meta.ip, meta.user_agent, reason="user_not_found" if user is None else "invalid_password"
        )
        error = _invalid_credentials(login_type)
        if result["locked"]:
            error.detail["account_locked"] = True
        raise error

    if user.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED):
        audit.warning("login_inactive_account", user_id=str(user.id), status=user.status.value)
        raise APIError(ErrorCode.AUTH_ACCOUNT_INACTIVE)

    if user.status == UserStatus.PENDING:
        if get_config().verification_required:
            raise APIError(
                ErrorCode.AUTH_ACCOUNT_PENDING,
                extra={"requires_verification": True, "verification_type": "phone" if user.phone else "email"},
            )
        user.status = UserStatus.ACTIVE
        if login_type == "email":
            user.email_verified = True
        else:
            user.phone_verified = True

    user.last_login_at = datetime.now(timezone.utc)
    await db.flush()

    session = await sessions.create_session(
        user.id,
        meta,
        remember_me=body.remember_me,
        login_type=login_type,
    )
    remember_token = None
    if body.remember_me:
        remember_token = await sessions.create_remember_me_token(user.id, session.device_fingerprint)
    apply_session(response, session, remember_token)

    token = tokens.create_access_token(user, session_id=session.session_id)
    await security.record_successful_login(identifier, meta.ip, user_id=str(user.id))

    return AuthResponse(
        message="Login successful",
        message_bn="লগিন সফল",
        user=user_payload(user),
        token=token,
        expires_in=tokens.expires_in,
        session_id=session.session_id,
        session_expires_at=session.expires_at,
        max_age=session.max_age,
        login_type=login_type,
        remember_me=body.remember_me,
    )


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    body: Optional[LogoutRequest] = None,
    meta: RequestMeta = Depends(get_request_meta),
    sessions: SessionService = Depends(get_session_service),
    tokens: TokenService = Depends(get_token_service),
) -> Dict[str, Any]:
    """End the current session, or every session with ``all_devices``.

    The Bearer token, if any, is revoked as well.
    """
    all_devices = bool(body and body.all_devices)
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        try:
            await tokens.revoke_token(tokens.decode_token(authorization[7:]))
        except TokenError as e:
            logger.debug(f"Logout with unusable bearer token: {e}")

    session_id = get_session_id(request)
    clear_session_cookie(response)
    if not session_id:
        return {"message": "Logout successful", "message_bn": "লগআউট সফল", "session_found": False}

    validation = await sessions.validate_session(session_id, meta)
    if not validation.valid:
        return {
            "message": "Logout successful",
            "message_bn": "লগআউট সফল",
            "session_expired": True,
        }

    user_id = validation.session.user_id
    if all_devices:
        destroyed = await sessions.destroy_all_user_sessions(user_id)
        await sessions.revoke_remember_me_tokens(user_id)
        clear_remember_me_cookies(response)
    else:
        destroyed = int(await sessions.destroy_session(session_id, reason="user_logout"))

    return {
        "message": "Logout successful",
        "message_bn": "লগআউট সফল",
        "all_devices": all_devices,
        "destroyed_count": destroyed,
    }


@router.post("/refresh")
async def refresh_token(
    body: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Dict[str, Any]:
    """Exchange a valid access token for a new one; the old one is revoked."""
    try:
        claims = await tokens.verify_token(body.token)
    except TokenError as e:
        logger.debug(f"Token refresh rejected: {e}")
        raise APIError(ErrorCode.AUTH_INVALID_TOKEN)

    user = await db.get(User, _uuid_or_401(claims["sub"]))
    if user is None or user.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED):
        raise APIError(ErrorCode.AUTH_INVALID_TOKEN, detail="User not found or inactive")

    new_token = tokens.create_access_token(user, session_id=claims.get("session_id"))
    await tokens.revoke_token(claims)
    return {
        "message": "Token refreshed successfully",
        "message_bn": "টোকেন সফলভাবে রিফ্রেশ হয়েছে",
        "user": user_payload(user),
        "token": new_token,
        "token_type": "Bearer",
        "expires_in": tokens.expires_in,
    }


@router.get("/me")
async def me(
    user: User = Depends(get_current_user),
    session: Optional[SessionData] = Depends(get_optional_session),
) -> Dict[str, Any]:
    """Current user and, when present, the current session."""
    return {
        "user": user_payload(user),
        "session": session.public() if session else None,
    }


# ============================================================================
# Phone OTP
# ============================================================================


@router.post("/send-otp", dependencies=[Depends(rate_limit("otp"))])
async def send_otp(
    body: PhoneRequest,
    user: Optional[User] = Depends(get_optional_user),
    otp: OTPService = Depends(get_otp_service),
) -> Dict[str, Any]:
    """Send a verification code. Anonymous requests are allowed for sign-up flows."""
    try:
        result = await otp.generate(user.id if user else None, body.phone)
    except OTPError as e:
        raise otp_api_error(e)
    return result.to_dict()


@router.post("/verify-otp", dependencies=[Depends(rate_limit("otp"))])
async def verify_otp(
    body: VerifyOTPRequest,
    otp: OTPService = Depends(get_otp_service),
) -> Dict[str, Any]:
    """Check a code; success marks the owning account phone-verified and ACTIVE."""
    try:
        result = await otp.verify(None, body.phone, body.otp)
    except OTPError as e:
        raise otp_api_error(e)
    return result.to_dict()


@router.post("/resend-otp", dependencies=[Depends(rate_limit("otp"))])
async def resend_otp(
    body: PhoneRequest,
    otp: OTPService = Depends(get_otp_service),
) -> Dict[str, Any]:
    try:
        result = await otp.resend(None, body.phone)
    except OTPError as e:
        raise otp_api_error(e)
    return result.to_dict()


# ============================================================================
# Passwords
# ============================================================================


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """Change the password and end every other session of the user."""
    if body.new_password != body.confirm_password:
        raise APIError(
            ErrorCode.VAL_INVALID_FORMAT,
            detail="New password and confirm password must match",
            detail_bn="নতুন পাসওয়ার্ড এবং নিশ্চিত পাসওয়ার্ড মিলতে হবে",
        )
    if not await passwords.verify_password(body.current_password, user.password_hash):
        audit.warning("password_change_wrong_current", user_id=str(user.id))
        raise APIError(ErrorCode.PASSWORD_INCORRECT)

    strength = passwords.validate_strength(
        body.new_password,
        {"first_name": user.first_name, "last_name": user.last_name, "email": user.email, "phone": user.phone},
    )
    if not strength.is_valid:
        raise APIError(ErrorCode.PASSWORD_WEAK, extra={"details": strength.to_dict()})

    if await passwords.check_password_history(user.id, body.new_password, db):
        raise APIError(ErrorCode.PASSWORD_REUSED, extra={"history_size": passwords.policy.history_size})

    new_hash = await passwords.hash_password(body.new_password)
    user.password_hash = new_hash
    await passwords.record_password_history(user.id, new_hash, db)
    await db.flush()

    current_session = get_session_id(request)
    destroyed = await sessions.destroy_all_user_sessions(user.id, except_session_id=current_session)
    await sessions.revoke_remember_me_tokens(user.id)
    clear_remember_me_cookies(response)

    audit.info("password_changed", user_id=str(user.id), sessions_destroyed=destroyed)
    return {
        "message": "Password changed successfully",
        "message_bn": "পাসওয়ার্ড সফলভাবে পরিবর্তন হয়েছে",
        "sessions_destroyed": destroyed,
    }


@router.get("/password-policy")
async def password_policy(passwords: PasswordService = Depends(get_password_service)) -> Dict[str, Any]:
    return {"policy": passwords.get_policy()}


@router.post("/validate-password")
async def validate_password(
    body: ValidatePasswordRequest,
    passwords: PasswordService = Depends(get_password_service),
) -> Dict[str, Any]:
    result = passwords.validate_strength(
        body.password,
        {"first_name": body.first_name, "last_name": body.last_name, "email": body.email, "phone": body.phone},
    )
    return result.to_dict()


# ============================================================================
# Email verification and password reset
# ============================================================================


def _activate_if_verified(user: User) -> None:
    """PENDING accounts activate once every identity they registered is verified."""
    if user.status == UserStatus.PENDING and (not user.phone or user.phone_verified):
        user.status = UserStatus.ACTIVE


@router.post("/verify-email", dependencies=[Depends(rate_limit("auth"))])
async def verify_email(
    body: EmailTokenRequest,
    db: AsyncSession = Depends(get_db),
    email_tokens: EmailTokenService = Depends(get_email_token_service),
    emails: EmailService = Depends(get_email_service),
) -> Dict[str, Any]:
    """Use a verification link; the token is single-use."""
    try:
        user_id = await email_tokens.consume(body.token, EmailTokenPurpose.VERIFY_EMAIL)
    except EmailTokenError as e:
        raise email_token_api_error(e)

    user = await db.get(User, user_id)
    if user is None:
        raise APIError(ErrorCode.EMAIL_TOKEN_INVALID)
    if user.email_verified:
        raise APIError(ErrorCode.EMAIL_ALREADY_VERIFIED)

    user.email_verified = True
    _activate_if_verified(user)
    await db.flush()

    # A failed welcome email does not undo the verification
    await emails.send_welcome(user.email, user.first_name)
    audit.info("email_verified", user_id=str(user.id), status=user.status.value)
    return {
        "message": "Email verified successfully",
        "message_bn": "ইমেল সফলভাবে যাচাই হয়েছে",
        "user": user_payload(user),
    }


@router.post("/resend-verification", dependencies=[Depends(rate_limit("auth"))])
async def resend_verification(
    body: EmailRequest,
    db: AsyncSession = Depends(get_db),
    email_tokens: EmailTokenService = Depends(get_email_token_service),
    emails: EmailService = Depends(get_email_service),
) -> Dict[str, Any]:
    """Mail a fresh verification link, at most once per cooldown.

    Unknown addresses get the same response as known ones.
    """
    email = body.email.lower()
    response = {
        "message": "If an account uses this email, a verification link has been sent",
        "message_bn": "এই ইমেলের কোনো একাউন্ট থাকলে যাচাই লিঙ্ক পাঠানো হয়েছে",
    }
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None:
        logger.debug("Verification resend for unknown email")
        return response
    if user.email_verified:
        raise APIError(ErrorCode.EMAIL_ALREADY_VERIFIED)

    await send_verification_email(user, email_tokens, emails, enforce_cooldown=True)
    audit.info("email_verification_resent", user_id=str(user.id))
    return response


@router.post("/forgot-password", dependencies=[Depends(rate_limit("auth"))])
async def forgot_password(
    body: EmailRequest,
    db: AsyncSession = Depends(get_db),
    email_tokens: EmailTokenService = Depends(get_email_token_service),
    emails: EmailService = Depends(get_email_service),
) -> Dict[str, Any]:
    """Mail a one-hour password reset link.

    The response does not reveal whether the address has an account.
    Inactive and suspended accounts get no link.
    """
    email = body.email.lower()
    response = {
        "message": "If an account uses this email, a password reset link has been sent",
        "message_bn": "এই ইমেলের কোনো একাউন্ট থাকলে পাসওয়ার্ড রিসেট লিঙ্ক পাঠানো হয়েছে",
    }
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None or user.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED):
        audit.info("password_reset_requested", user_id=str(user.id) if user else None, sent=False)
        return response

    issued = await email_tokens.issue(user.id, EmailTokenPurpose.RESET_PASSWORD)
    result = await emails.send_password_reset(user.email, issued.token, user.first_name)
    if not result.success:
        raise APIError(ErrorCode.EMAIL_SEND_FAILED, extra={"code": result.code})

    audit.info("password_reset_requested", user_id=str(user.id), sent=True)
    return response


@router.post("/reset-password", dependencies=[Depends(rate_limit("auth"))])
async def reset_password(
    body: ResetPasswordRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    passwords: PasswordService = Depends(get_password_service),
    sessions: SessionService = Depends(get_session_service),
    email_tokens: EmailTokenService = Depends(get_email_token_service),
) -> Dict[str, Any]:
    """Set a new password from a reset link and end every session of the user.

    Any rejection rolls the request back, so the link stays usable until
    it expires.
    """
    if body.new_password != body.confirm_password:
        raise APIError(
            ErrorCode.VAL_INVALID_FORMAT,
            detail="New password and confirm password must match",
            detail_bn="নতুন পাসওয়ার্ড এবং নিশ্চিত পাসওয়ার্ড মিলতে হবে",
        )
    try:
        user_id = await email_tokens.consume(body.token, EmailTokenPurpose.RESET_PASSWORD)
    except EmailTokenError as e:
        raise email_token_api_error(e)

    user = await db.get(User, user_id)
    if user is None or user.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED):
        raise APIError(ErrorCode.AUTH_ACCOUNT_INACTIVE)

    strength = passwords.validate_strength(
        body.new_password,
        {"first_name": user.first_name, "last_name": user.last_name, "email": user.email, "phone": user.phone},
    )
    if not strength.is_valid:
        raise APIError(ErrorCode.PASSWORD_WEAK, extra={"details": strength.to_dict()})
    if await passwords.check_password_history(user.id, body.new_password, db):
        raise APIError(ErrorCode.PASSWORD_REUSED, extra={"history_size": passwords.policy.history_size})

    new_hash = await passwords.hash_password(body.new_password)
    user.password_hash = new_hash
    await passwords.record_password_history(user.id, new_hash, db)
    # The link was delivered to this address
    user.email_verified = True
    _activate_if_verified(user)
    await db.flush()

    destroyed = await sessions.destroy_all_user_sessions(user.id)
    await sessions.revoke_remember_me_tokens(user.id)
    clear_remember_me_cookies(response)

    audit.info("password_reset", user_id=str(user.id), sessions_destroyed=destroyed)
    return {
        "message": "Password reset successfully. Please log in with your new password.",
        "message_bn": "পাসওয়ার্ড সফলভাবে রিসেট হয়েছে। নতুন পাসওয়ার্ড দিয়ে লগিন করুন।",
        "sessions_destroyed": destroyed,
    }


# ============================================================================
# Phone numbers
# ============================================================================


@router.post("/validate-phone")
async def validate_phone(body: ValidatePhoneRequest) -> Dict[str, Any]:
    result = phone_validator.validate_for_use_case(body.phone, body.use_case)
    data = result.to_dict()
    if result.is_valid:
        data["formatted"] = {
            "international": phone_validator.format_phone(result.normalized_phone, "international"),
            "local": phone_validator.format_phone(result.normalized_phone, "local"),
            "display": phone_validator.format_phone(result.normalized_phone, "display"),
        }
    return data


@router.get("/operators")
async def operators() -> Dict[str, List[Dict[str, str]]]:
    return {
        "operators": phone_validator.supported_operators(),
        "landline_areas": phone_validator.supported_landline_areas(),
    }


# ============================================================================
# Remember me
# ============================================================================


@router.post("/validate-remember-me")
async def validate_remember_me(
    request: Request,
    body: Optional[RememberMeRequest] = None,
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    validation = await sessions.validate_remember_me_token(_remember_me_token(request, body))
    if not validation.valid:
        raise APIError(ErrorCode.SESSION_REMEMBER_ME_INVALID, detail=validation.reason)
    return {
        "valid": True,
        "user_id": validation.token.user_id,
        "expires_at": validation.token.expires_at.isoformat(),
    }


@router.post("/refresh-from-remember-me")
async def refresh_from_remember_me(
    request: Request,
    response: Response,
    body: Optional[RememberMeRequest] = None,
    meta: RequestMeta = Depends(get_request_meta),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    tokens: TokenService = Depends(get_token_service),
) -> Dict[str, Any]:
    """Start a new session from a remember-me token and rotate the token."""
    result = await sessions.refresh_from_remember_me_token(_remember_me_token(request, body), meta)
    if not result.success:
        clear_remember_me_cookies(response)
        raise APIError(ErrorCode.SESSION_REMEMBER_ME_INVALID, detail=result.reason)

    user = await db.get(User, _uuid_or_401(result.session.user_id))
    if user is None or user.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED):
        await sessions.destroy_session(result.session.session_id, reason="account_inactive")
        await sessions.revoke_remember_me_tokens(result.session.user_id)
        raise APIError(ErrorCode.AUTH_ACCOUNT_INACTIVE)

    apply_session(response, result.session, result.remember_token)
    return {
        "message": "Session restored",
        "message_bn": "সেশন পুনরুদ্ধার হয়েছে",
        "user": user_payload(user),
        "token": tokens.create_access_token(user, session_id=result.session.session_id),
        "session_id": result.session.session_id,
        "session_expires_at": result.session.expires_at.isoformat(),
        "max_age": result.session.max_age,
    }


@router.post("/disable-remember-me")
async def disable_remember_me(
    response: Response,
    user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    revoked = await sessions.revoke_remember_me_tokens(user.id)
    clear_remember_me_cookies(response)
    return {
        "message": "Remember me disabled",
        "message_bn": "রিমেম্বার মি নিষ্ক্রিয় করা হয়েছে",
        "revoked_count": revoked,
    }
