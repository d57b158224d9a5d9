"""Single-use email link tokens.

Tokens are 32 random bytes (URL-safe base64) and stored only as a SHA-256
digest. A user holds at most one live token per purpose: issuing a new
one replaces the old. A token is deleted when used; expired ones are
removed by the cleanup task.
Verification links last 24 hours, reset links one hour, and a new
verification email can be requested every five minutes.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from smartcommerce.config import EmailConfig, get_config
from smartcommerce.db.models import EmailToken, EmailTokenPurpose
from smartcommerce.db.models.base import utcnow
from smartcommerce.logging_config import get_audit_logger, get_logger

logger = get_logger(__name__)
audit = get_audit_logger()


class EmailTokenError(Exception):
    """Token missing, expired, or requested too soon.

    ``code`` is one of INVALID_TOKEN, TOKEN_EXPIRED, RESEND_TOO_SOON.
    """

    def __init__(self, code: str, retry_after: Optional[int] = None):
        self.code = code
        self.retry_after = retry_after
        super().__init__(code)


@dataclass
class IssuedToken:
    token: str
    user_id: UUID
    purpose: EmailTokenPurpose
    expires_at: datetime


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class EmailTokenService:
    """Issues and consumes email tokens within the request's database session.

    Changes are flushed, not committed; the caller's transaction decides.
    """

    def __init__(self, db: AsyncSession, config: Optional[EmailConfig] = None):
        self.db = db
        self.config = config or get_config().email

    def _lifetime(self, purpose: EmailTokenPurpose) -> timedelta:
        if purpose == EmailTokenPurpose.RESET_PASSWORD:
            return timedelta(seconds=self.config.reset_expiry_seconds)
        return timedelta(seconds=self.config.verification_expiry_seconds)

    async def issue(self, user_id: UUID, purpose: EmailTokenPurpose, enforce_cooldown: bool = False) -> IssuedToken:
        """Replace any live token of ``purpose`` for the user with a new one.

        Raises:
            EmailTokenError: RESEND_TOO_SOON when ``enforce_cooldown`` is set
                and the previous token is younger than the cooldown
        """
        now = utcnow()
        if enforce_cooldown:
            cooldown = timedelta(seconds=self.config.resend_cooldown_seconds)
            latest = (
                await self.db.execute(
                    select(EmailToken.created_at)
                    .where(EmailToken.user_id == user_id, EmailToken.purpose == purpose)
                    .order_by(EmailToken.created_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if latest is not None and latest > now - cooldown:
                wait = max(1, int((latest + cooldown - now).total_seconds() + 0.999))
                raise EmailTokenError("RESEND_TOO_SOON", retry_after=wait)

        await self.db.execute(
            delete(EmailToken).where(EmailToken.user_id == user_id, EmailToken.purpose == purpose)
        )
        token = secrets.token_urlsafe(32)
        record = EmailToken(
            user_id=user_id,
            purpose=purpose,
            token_hash=hash_token(token),
            expires_at=now + self._lifetime(purpose),
            created_at=now,
        )
        self.db.add(record)
        await self.db.flush()
        logger.info("Email token issued", extra={"user_id": str(user_id), "purpose": purpose.value})
        return IssuedToken(token=token, user_id=user_id, purpose=purpose, expires_at=record.expires_at)

    async def consume(self, token: str, purpose: EmailTokenPurpose) -> UUID:
        """Delete the token and return its user id.

        Raises:
            EmailTokenError: INVALID_TOKEN or TOKEN_EXPIRED
        """
        record = (
            await self.db.execute(
                select(EmailToken).where(
                    EmailToken.token_hash == hash_token((token or "").strip()),
                    EmailToken.purpose == purpose,
                )
            )
        ).scalar_one_or_none()
        if record is None:
            audit.warning("email_token_invalid", purpose=purpose.value)
            raise EmailTokenError("INVALID_TOKEN")

        if record.expires_at <= utcnow():
            # Left for cleanup_expired
            audit.warning("email_token_expired", user_id=str(record.user_id), purpose=purpose.value)
            raise EmailTokenError("TOKEN_EXPIRED")

        user_id = record.user_id
        await self.db.delete(record)
        await self.db.flush()
        return user_id

    async def cleanup_expired(self) -> int:
        result = await self.db.execute(delete(EmailToken).where(EmailToken.expires_at < utcnow()))
        await self.db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Cleaned up {deleted} email tokens", extra={"deleted_count": deleted})
        return deleted
