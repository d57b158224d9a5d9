"""One-time passwords sent by SMS for phone verification."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDPrimaryKeyMixin, generate_repr


class PhoneOTP(Base, UUIDPrimaryKeyMixin):
    """A single OTP issued to a phone number.

    Only a SHA-256 digest of the code is stored.
    """

    __tablename__ = "phone_otps"

    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    otp_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_phone_otps_phone_created_at", "phone", "created_at"),
        Index("ix_phone_otps_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return generate_repr(self, "id", "phone", "attempts", "verified_at")
