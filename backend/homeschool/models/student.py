"""Student models - invites issued by parents and the profiles they create."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homeschool.models.base import Base, utcnow

if TYPE_CHECKING:
    from homeschool.models.user import User

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"


class StudentInvite(Base):
    """Parent-issued invitation that bootstraps a student account.

    Moves from pending to accepted exactly once and is never deleted.
    An expired invite stays pending forever.

    Attributes:
        id: UUID primary key.
        email: Address the invite was sent to.
        student_name: Name the student account will get.
        grade_level: Optional grade for the student profile.
        parent_id: FK to the inviting parent.
        token: SHA-256 digest of the invite code.
        status: pending or accepted.
        created_date: When the invite was issued.
        expires_date: created_date plus the invite lifetime.
        accepted_at: When the invite was redeemed.
    """

    __tablename__ = "student_invites"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted')",
            name="ck_student_invites_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    grade_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=INVITE_PENDING,
    )
    created_date: Mapped[datetime] = mapped_column(
        default=utcnow,
        nullable=False,
    )
    expires_date: Mapped[datetime] = mapped_column(nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)


class StudentProfile(Base):
    """Links a student user to the parent who invited them.

    Attributes:
        id: UUID primary key.
        user_id: FK to the student user (one profile per student).
        parent_id: FK to the parent user.
        grade_level: Grade copied from the invite.
        created_at: Record creation timestamp.
    """

    __tablename__ = "student_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    grade_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="student_profile",
        foreign_keys=[user_id],
    )
