"""Parent-issued student invites.

A parent invites a student by email. The student redeems the emailed
invite code with a password, which creates an unverified student
account linked to the parent. An invite is accepted at most once;
redemption flips its status with a conditional update, so a concurrent
second redemption fails with InvalidInviteError.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.auth import hash_password, validate_password
from homeschool.core.config import settings
from homeschool.core.email import NotificationDispatcher
from homeschool.core.errors import (
    ConflictError,
    ExpiredInviteError,
    ForbiddenError,
    InvalidInviteError,
)
from homeschool.core.tokens import hash_token, is_expired, issue_token
from homeschool.models.student import INVITE_PENDING, StudentInvite, StudentProfile
from homeschool.models.user import User
from homeschool.repositories.student_repository import (
    StudentInviteRepository,
    StudentProfileRepository,
)
from homeschool.repositories.user_repository import UserRepository
from homeschool.services.token_manager import issue_verification_token

logger = logging.getLogger(__name__)

STUDENT_SIGNUP_MESSAGE = (
    "Student account created. Please check your email to verify your account."
)


async def create_invite(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    *,
    parent: User,
    email: str,
    student_name: str,
    grade_level: str | None = None,
) -> StudentInvite:
    """Invite a student and email them the invite code.

    Args:
        db: Async database session.
        dispatcher: Email dispatcher.
        parent: Inviting user (must be a parent).
        email: Student email.
        student_name: Name for the student account.
        grade_level: Optional grade.

    Returns:
        The pending invite.

    Raises:
        ForbiddenError: Caller is not a parent.
        ConflictError: Email already has an account.
    """
    if parent.role != "parent":
        raise ForbiddenError("Only parents can invite students")

    if await UserRepository.get_by_email(db, email) is not None:
        raise ConflictError("An account with this email already exists")

    plain, digest, expires_at = issue_token(timedelta(days=settings.invite_ttl_days))
    invite = await StudentInviteRepository.create(
        db,
        parent_id=parent.id,
        email=email,
        student_name=student_name,
        grade_level=grade_level,
        token_hash=digest,
        expires_date=expires_at,
    )
    dispatcher.send_student_invite_email(
        to=invite.email,
        student_name=student_name,
        parent_name=parent.name,
        token=plain,
        db=db,
    )
    logger.info(
        "Student invite created",
        extra={"invite_id": str(invite.id), "parent_id": str(parent.id)},
    )
    return invite


async def list_invites(db: AsyncSession, parent: User) -> list[StudentInvite]:
    """Invites sent by a parent, newest first.

    Raises:
        ForbiddenError: Caller is not a parent.
    """
    if parent.role != "parent":
        raise ForbiddenError("Only parents can view student invites")
    return await StudentInviteRepository.list_for_parent(db, parent.id)


async def redeem_invite(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    *,
    token: str,
    password: str,
) -> tuple[User, StudentProfile]:
    """Create a student account from an invite code.

    The new account is unverified and gets a verification email; no
    session is issued. An expired invite stays pending.

    Args:
        db: Async database session.
        dispatcher: Email dispatcher.
        token: Invite code from the email.
        password: Password for the student account.

    Returns:
        Tuple of (student user, student profile).

    Raises:
        ValidationError: Password breaks the length rule.
        InvalidInviteError: Code unknown or already used.
        ExpiredInviteError: Invite past its expiry.
        ConflictError: The invited email registered in the meantime.
    """
    validate_password(password)

    invite = await StudentInviteRepository.get_by_token(db, hash_token(token))
    if invite is None or invite.status != INVITE_PENDING:
        raise InvalidInviteError()
    if is_expired(invite.expires_date):
        raise ExpiredInviteError()

    if await UserRepository.get_by_email(db, invite.email) is not None:
        raise ConflictError()

    password_hash = await hash_password(password)

    if not await StudentInviteRepository.mark_accepted(
        db, invite.id, datetime.now(UTC)
    ):
        raise InvalidInviteError()

    try:
        student = await UserRepository.create(
            db,
            email=invite.email,
            role="student",
            name=invite.student_name,
            password_hash=password_hash,
        )
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError() from exc

    profile = await StudentProfileRepository.create(
        db,
        user_id=student.id,
        parent_id=invite.parent_id,
        grade_level=invite.grade_level,
    )
    student = await issue_verification_token(db, dispatcher, student)
    logger.info(
        "Student invite redeemed",
        extra={"invite_id": str(invite.id), "user_id": str(student.id)},
    )
    return student, profile
