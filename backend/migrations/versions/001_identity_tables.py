"""Create identity tables: users, accounts, student_invites, student_profiles.

Revision ID: 001_identity_tables
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_identity_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.UUID(),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    # Users: one row per person, whatever the sign-in method
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column(
            "is_email_verified",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("verification_token", sa.String(64), nullable=True),
        _timestamp("verification_token_expiry", nullable=True),
        sa.Column("consumed_verification_token", sa.String(64), nullable=True),
        sa.Column("password_reset_token", sa.String(64), nullable=True),
        _timestamp("password_reset_token_expiry", nullable=True),
        sa.Column("profile_picture", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "role IN ('parent', 'tutor', 'student')",
            name="ck_users_role",
        ),
    )
    op.create_index("idx_user_email", "users", ["email"], unique=True)
    op.create_index(
        "idx_user_verification_token", "users", ["verification_token"], unique=True
    )
    op.create_index(
        "idx_user_consumed_verification_token",
        "users",
        ["consumed_verification_token"],
    )
    op.create_index(
        "idx_user_password_reset_token",
        "users",
        ["password_reset_token"],
        unique=True,
    )

    # Accounts: external identities (Google subject, federated SDK uid)
    op.create_table(
        "accounts",
        _uuid_pk(),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("provider_account_id", sa.String(255), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "provider", "provider_account_id", name="uq_accounts_provider_account"
        ),
        sa.UniqueConstraint("user_id", "provider", name="uq_accounts_user_provider"),
    )
    op.create_index("idx_account_user_id", "accounts", ["user_id"])

    # Student invites: pending -> accepted once, never deleted
    op.create_table(
        "student_invites",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("student_name", sa.String(255), nullable=False),
        sa.Column("grade_level", sa.String(50), nullable=True),
        sa.Column(
            "parent_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default="pending",
        ),
        _timestamp("created_date"),
        sa.Column("expires_date", sa.DateTime(timezone=True), nullable=False),
        _timestamp("accepted_at", nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted')",
            name="ck_student_invites_status",
        ),
    )
    op.create_index("idx_student_invite_token", "student_invites", ["token"], unique=True)
    op.create_index("idx_student_invite_email", "student_invites", ["email"])
    op.create_index("idx_student_invite_parent_id", "student_invites", ["parent_id"])

    # Student profiles: student user -> parent
    op.create_table(
        "student_profiles",
        _uuid_pk(),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "parent_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("grade_level", sa.String(50), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "idx_student_profile_user_id", "student_profiles", ["user_id"], unique=True
    )
    op.create_index("idx_student_profile_parent_id", "student_profiles", ["parent_id"])


def downgrade() -> None:
    op.drop_index("idx_student_profile_parent_id")
    op.drop_index("idx_student_profile_user_id")
    op.drop_table("student_profiles")
    op.drop_index("idx_student_invite_parent_id")
    op.drop_index("idx_student_invite_email")
    op.drop_index("idx_student_invite_token")
    op.drop_table("student_invites")
    op.drop_index("idx_account_user_id")
    op.drop_table("accounts")
    op.drop_index("idx_user_password_reset_token")
    op.drop_index("idx_user_consumed_verification_token")
    op.drop_index("idx_user_verification_token")
    op.drop_index("idx_user_email")
    op.drop_table("users")
