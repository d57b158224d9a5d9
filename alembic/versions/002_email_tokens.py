"""Email verification and password reset tokens

Revision ID: 002
Revises: 001
Create Date: 2025-02-03

Adds email_tokens: hashed single-use link tokens for verifying an email
address and for resetting a forgotten password.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PURPOSES = ("VERIFY_EMAIL", "RESET_PASSWORD")


def upgrade() -> None:
    postgresql.ENUM(*PURPOSES, name="email_token_purpose", create_type=False).create(
        op.get_bind(), checkfirst=True
    )

    op.create_table(
        "email_tokens",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "purpose",
            postgresql.ENUM(*PURPOSES, name="email_token_purpose", create_type=False),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_email_tokens_user_purpose", "email_tokens", ["user_id", "purpose"])
    op.create_index("ix_email_tokens_expires_at", "email_tokens", ["expires_at"])


def downgrade() -> None:
    op.drop_table("email_tokens")
    postgresql.ENUM(name="email_token_purpose").drop(op.get_bind(), checkfirst=True)
