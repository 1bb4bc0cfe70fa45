"""Repositories for student invites and student profiles."""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.models.student import (
    INVITE_ACCEPTED,
    INVITE_PENDING,
    StudentInvite,
    StudentProfile,
)
from homeschool.repositories.user_repository import normalize_email


class StudentInviteRepository:
    """Stateless repository for StudentInvite table operations.

    Invites are never deleted. The only state change is pending ->
    accepted, done with a conditional UPDATE so two concurrent
    redemptions can't both succeed.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        parent_id: uuid.UUID,
        email: str,
        student_name: str,
        grade_level: str | None,
        token_hash: str,
        expires_date: datetime,
    ) -> StudentInvite:
        """Persist a pending invite.

        Args:
            db: Async database session.
            parent_id: Inviting parent.
            email: Student email (normalized before storage).
            student_name: Name for the student account.
            grade_level: Optional grade.
            token_hash: SHA-256 digest of the invite code.
            expires_date: When the invite stops being redeemable.

        Returns:
            Created StudentInvite.
        """
        invite = StudentInvite(
            parent_id=parent_id,
            email=normalize_email(email),
            student_name=student_name,
            grade_level=grade_level,
            token=token_hash,
            status=INVITE_PENDING,
            expires_date=expires_date,
        )
        db.add(invite)
        await db.flush()
        await db.refresh(invite)
        return invite

    @staticmethod
    async def get_by_token(db: AsyncSession, token_hash: str) -> StudentInvite | None:
        """Fetch an invite by its token digest."""
        stmt = select(StudentInvite).where(StudentInvite.token == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_accepted(
        db: AsyncSession, invite_id: uuid.UUID, accepted_at: datetime
    ) -> bool:
        """Move an invite from pending to accepted.

        Args:
            db: Async database session.
            invite_id: Invite to accept.
            accepted_at: Redemption time.

        Returns:
            True if this call accepted the invite, False if it was no
            longer pending.
        """
        stmt = (
            update(StudentInvite)
            .where(
                StudentInvite.id == invite_id,
                StudentInvite.status == INVITE_PENDING,
            )
            .values(status=INVITE_ACCEPTED, accepted_at=accepted_at)
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def list_for_parent(
        db: AsyncSession, parent_id: uuid.UUID
    ) -> list[StudentInvite]:
        """A parent's invites, newest first."""
        stmt = (
            select(StudentInvite)
            .where(StudentInvite.parent_id == parent_id)
            .order_by(StudentInvite.created_date.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


class StudentProfileRepository:
    """Stateless repository for StudentProfile table operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        parent_id: uuid.UUID,
        grade_level: str | None,
    ) -> StudentProfile:
        """Link a student user to their parent."""
        profile = StudentProfile(
            user_id=user_id,
            parent_id=parent_id,
            grade_level=grade_level,
        )
        db.add(profile)
        await db.flush()
        await db.refresh(profile)
        return profile
