"""User model for email/phone password accounts.

A user signs in with either an email address or a Bangladeshi phone
number. Accounts start as PENDING and become ACTIVE once the phone number
is verified by OTP (or immediately when verification is disabled).
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, CheckConstraint, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, generate_repr

if TYPE_CHECKING:
    from .address import Address


class UserRole(str, enum.Enum):
    """Roles used for route authorization."""

    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    CUSTOMER = "CUSTOMER"


class UserStatus(str, enum.Enum):
    """Account lifecycle states."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING = "PENDING"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """User account.

    Attributes:
        id: UUID primary key
        email: Email address (unique, optional when a phone is given)
        email_verified: Whether the email address was confirmed
        phone: Normalized phone number in +880 form (unique, optional)
        phone_verified: Whether the phone number passed OTP verification
        password_hash: bcrypt hash of the password
        first_name: Given name
        last_name: Family name
        role: Authorization role
        status: Account lifecycle state
        last_login_at: Time of the last successful login
        addresses: Saved shipping/billing addresses
    """

    __tablename__ = "users"

    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    phone: Mapped[str | None] = mapped_column(
        String(20),
        unique=True,
        nullable=True,
    )
    phone_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        default=UserRole.CUSTOMER,
        nullable=False,
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status"),
        default=UserStatus.PENDING,
        nullable=False,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Relationships
    addresses: Mapped[List["Address"]] = relationship(
        "Address",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_users_email", "email"),
        Index("ix_users_phone", "phone"),
        Index("ix_users_status", "status"),
        CheckConstraint("email IS NOT NULL OR phone IS NOT NULL", name="ck_users_email_or_phone"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        """Whether the account may authenticate."""
        return self.status not in (UserStatus.INACTIVE, UserStatus.SUSPENDED)

    def __repr__(self) -> str:
        return generate_repr(self, "id", "email", "phone", "status")
