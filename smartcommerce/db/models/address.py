"""Address model for Bangladesh shipping and billing addresses.

Addresses follow the division → district → upazila hierarchy. Each user
has at most one default address, enforced by a partial unique index.
"""

import enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, generate_repr

if TYPE_CHECKING:
    from .user import User


class AddressType(str, enum.Enum):
    """Purpose of an address."""

    SHIPPING = "SHIPPING"
    BILLING = "BILLING"


class Division(str, enum.Enum):
    """Administrative divisions of Bangladesh."""

    DHAKA = "DHAKA"
    CHITTAGONG = "CHITTAGONG"
    RAJSHAHI = "RAJSHAHI"
    SYLHET = "SYLHET"
    KHULNA = "KHULNA"
    BARISHAL = "BARISHAL"
    RANGPUR = "RANGPUR"
    MYMENSINGH = "MYMENSINGH"


class Address(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A saved address belonging to a user.

    Attributes:
        user_id: Owning user
        type: SHIPPING or BILLING
        first_name: Recipient given name
        last_name: Recipient family name
        phone: Recipient phone (+880 form)
        address_line1: Street / house details
        address_line2: Optional extra line
        division: Division enum value
        district: District name
        upazila: Upazila name (optional)
        postal_code: 4-digit postal code (optional)
        is_default: Whether this is the user's default address
    """

    __tablename__ = "addresses"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[AddressType] = mapped_column(
        Enum(AddressType, name="address_type"),
        default=AddressType.SHIPPING,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    address_line1: Mapped[str] = mapped_column(String(200), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(200), nullable=True)
    division: Mapped[Division] = mapped_column(
        Enum(Division, name="division"),
        nullable=False,
    )
    district: Mapped[str] = mapped_column(String(100), nullable=False)
    upazila: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(4), nullable=True)
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="addresses",
    )

    __table_args__ = (
        Index("ix_addresses_user_id", "user_id"),
        Index(
            "uq_addresses_one_default_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    def __repr__(self) -> str:
        return generate_repr(self, "id", "user_id", "division", "is_default")
