"""Previously used password hashes, for reuse prevention."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDPrimaryKeyMixin, generate_repr


class PasswordHistory(Base, UUIDPrimaryKeyMixin):
    """A password hash the user had at some point."""

    __tablename__ = "password_history"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_password_history_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return generate_repr(self, "id", "user_id", "created_at")
