"""Initial schema for accounts, sessions and addresses

Revision ID: 001
Revises:
Create Date: 2025-01-15

Creates the initial database schema:
- users: email/phone password accounts with role and status
- addresses: Bangladesh addresses, at most one default per user
- user_sessions: database fallback for Redis sessions
- phone_otps: hashed SMS verification codes
- password_history: previous password hashes for reuse checks
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLES = ("ADMIN", "MANAGER", "CUSTOMER")
USER_STATUSES = ("ACTIVE", "INACTIVE", "SUSPENDED", "PENDING")
ADDRESS_TYPES = ("SHIPPING", "BILLING")
DIVISIONS = ("DHAKA", "CHITTAGONG", "RAJSHAHI", "SYLHET", "KHULNA", "BARISHAL", "RANGPUR", "MYMENSINGH")


def upgrade() -> None:
    # Create enum types first
    for name, values in (
        ("user_role", USER_ROLES),
        ("user_status", USER_STATUSES),
        ("address_type", ADDRESS_TYPES),
        ("division", DIVISIONS),
    ):
        postgresql.ENUM(*values, name=name, create_type=False).create(op.get_bind(), checkfirst=True)

    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column("email_verified", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("phone", sa.String(20), unique=True, nullable=True),
        sa.Column("phone_verified", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column(
            "role",
            postgresql.ENUM(*USER_ROLES, name="user_role", create_type=False),
            server_default="CUSTOMER",
            nullable=False,
        ),
        sa.Column(
            "status",
            postgresql.ENUM(*USER_STATUSES, name="user_status", create_type=False),
            server_default="PENDING",
            nullable=False,
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("email IS NOT NULL OR phone IS NOT NULL", name="ck_users_email_or_phone"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_phone", "users", ["phone"])
    op.create_index("ix_users_status", "users", ["status"])

    # Create addresses table
    op.create_table(
        "addresses",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(*ADDRESS_TYPES, name="address_type", create_type=False),
            server_default="SHIPPING",
            nullable=False,
        ),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("address_line1", sa.String(200), nullable=False),
        sa.Column("address_line2", sa.String(200), nullable=True),
        sa.Column(
            "division",
            postgresql.ENUM(*DIVISIONS, name="division", create_type=False),
            nullable=False,
        ),
        sa.Column("district", sa.String(100), nullable=False),
        sa.Column("upazila", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(4), nullable=True),
        sa.Column("is_default", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_addresses_user_id", "addresses", ["user_id"])
    # At most one default address per user
    op.create_index(
        "uq_addresses_one_default_per_user",
        "addresses",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
    )

    # Create user_sessions table
    op.create_table(
        "user_sessions",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.String(128), unique=True, nullable=False),
        sa.Column("data", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])
    op.create_index("ix_user_sessions_expires_at", "user_sessions", ["expires_at"])

    # Create phone_otps table
    op.create_table(
        "phone_otps",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("otp_hash", sa.String(64), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_phone_otps_phone_created_at", "phone_otps", ["phone", "created_at"])
    op.create_index("ix_phone_otps_expires_at", "phone_otps", ["expires_at"])

    # Create password_history table
    op.create_table(
        "password_history",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_password_history_user_created", "password_history", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_table("password_history")
    op.drop_table("phone_otps")
    op.drop_table("user_sessions")
    op.drop_table("addresses")
    op.drop_table("users")

    for name in ("division", "address_type", "user_status", "user_role"):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
