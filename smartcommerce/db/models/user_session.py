"""Database fallback storage for sessions.

Sessions live in Redis. When Redis does not answer in time the session is
written here instead, and validation reads it back from this table.
"""

from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDPrimaryKeyMixin, generate_repr


class UserSession(Base, UUIDPrimaryKeyMixin):
    """Session row used while Redis is unavailable.

    Attributes:
        user_id: Owning user
        token: Session identifier (64 hex chars)
        data: Full session payload as stored in Redis
        expires_at: Absolute expiry
        last_activity: Last successful validation
        created_at: When the row was written
    """

    __tablename__ = "user_sessions"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
    )
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    last_activity: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_user_sessions_user_id", "user_id"),
        Index("ix_user_sessions_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return generate_repr(self, "id", "user_id", "expires_at")
