"""create users and gmail_accounts tables

Revision ID: 20261016_01
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="hr"),
        sa.Column("provider", sa.String(length=20), nullable=False, server_default="email"),
        sa.Column("provider_id", sa.String(length=255), nullable=True),
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
        sa.Column("hr_type", sa.String(length=20), nullable=True),
        sa.Column("company_name", sa.String(length=200), nullable=True),
        sa.Column("agency_name", sa.String(length=200), nullable=True),
        sa.Column("company_names", sa.JSON(), nullable=True),
        sa.Column("plan_type", sa.String(length=20), nullable=False, server_default="free"),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_profile_complete", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"])
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index("ix_users_provider_id_provider", "users", ["provider_id", "provider"])

    op.create_table(
        "gmail_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "email", name="uq_gmail_accounts_user_id_email"),
    )
    op.create_index(op.f("ix_gmail_accounts_id"), "gmail_accounts", ["id"])
    op.create_index(op.f("ix_gmail_accounts_user_id"), "gmail_accounts", ["user_id"])
    op.create_index(op.f("ix_gmail_accounts_email"), "gmail_accounts", ["email"])
    op.create_index(op.f("ix_gmail_accounts_provider_id"), "gmail_accounts", ["provider_id"])
    op.create_index("ix_gmail_accounts_user_id_status", "gmail_accounts", ["user_id", "status"])
    op.create_index("ix_gmail_accounts_user_id_is_primary", "gmail_accounts", ["user_id", "is_primary"])


def downgrade() -> None:
    op.drop_index("ix_gmail_accounts_user_id_is_primary", table_name="gmail_accounts")
    op.drop_index("ix_gmail_accounts_user_id_status", table_name="gmail_accounts")
    op.drop_index(op.f("ix_gmail_accounts_provider_id"), table_name="gmail_accounts")
    op.drop_index(op.f("ix_gmail_accounts_email"), table_name="gmail_accounts")
    op.drop_index(op.f("ix_gmail_accounts_user_id"), table_name="gmail_accounts")
    op.drop_index(op.f("ix_gmail_accounts_id"), table_name="gmail_accounts")
    op.drop_table("gmail_accounts")

    op.drop_index("ix_users_provider_id_provider", table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_index(op.f("ix_users_id"), table_name="users")
    op.drop_table("users")
