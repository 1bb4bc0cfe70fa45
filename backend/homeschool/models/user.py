"""User model - one row per person regardless of how they sign in."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homeschool.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from homeschool.models.account import Account
    from homeschool.models.student import StudentProfile

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"

ROLES = ("parent", "tutor", "student")

# Roles a person can pick for themselves. Students only join through invites.
SELF_SERVE_ROLES = ("parent", "tutor")

_ROLE_ALIASES = {"teacher": "tutor"}


def normalize_role(role: str) -> str:
    """Lower-case a role and map aliases ("teacher" -> "tutor")."""
    role = role.strip().lower()
    return _ROLE_ALIASES.get(role, role)


class User(Base, TimestampMixin):
    """User account.

    A user always has at least one way to sign in: a password hash, a
    linked Account (external identity), or both. The verification pair
    and the reset pair are independent and each is cleared as a unit.

    Attributes:
        id: UUID primary key.
        email: Unique, lower-cased email address.
        name: Display name.
        role: parent, tutor or student. Fixed at creation.
        password_hash: bcrypt hash. NULL for identity-provider-only users.
        is_email_verified: Whether login is allowed.
        verification_token: SHA-256 digest of the pending verification token.
        verification_token_expiry: When the pending verification token expires.
        consumed_verification_token: Digest of the last consumed verification
            token, so a second click on the same link succeeds.
        password_reset_token: SHA-256 digest of the pending reset token.
        password_reset_token_expiry: When the pending reset token expires.
        profile_picture: Avatar URL (usually from an identity provider).
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('parent', 'tutor', 'student')",
            name="ck_users_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    is_email_verified: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        default=False,
    )
    verification_token: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    verification_token_expiry: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    consumed_verification_token: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    password_reset_token: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    password_reset_token_expiry: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    profile_picture: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )

    # Relationships
    accounts: Mapped[list["Account"]] = relationship(
        "Account",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
    )
    student_profile: Mapped["StudentProfile | None"] = relationship(
        "StudentProfile",
        back_populates="user",
        foreign_keys="StudentProfile.user_id",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
        uselist=False,
    )
