"""Local email + password accounts.

Signup creates an unverified user and emails a verification link; login
refuses unverified users. Unknown email, missing password hash and wrong
password all produce the same AuthError, and the first two still spend a
bcrypt comparison so timing doesn't reveal which case happened.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.account_linking import resolve_self_serve_role
from homeschool.core.auth import (
    hash_password,
    validate_password,
    verify_against_dummy,
    verify_password,
)
from homeschool.core.email import NotificationDispatcher
from homeschool.core.errors import AuthError, ConflictError, VerificationRequiredError
from homeschool.models.user import User
from homeschool.repositories.user_repository import UserRepository
from homeschool.services.token_manager import issue_verification_token

logger = logging.getLogger(__name__)

SIGNUP_MESSAGE = (
    "Account created. Please check your email to verify your account before logging in."
)


async def signup(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    *,
    email: str,
    password: str,
    name: str,
    role: str,
) -> User:
    """Create an unverified password account.

    The email lookup only avoids hashing for an obvious duplicate; the
    unique constraint on users.email decides concurrent signups.

    Args:
        db: Async database session.
        dispatcher: Email dispatcher for the verification link.
        email: Account email.
        password: Plain-text password.
        name: Display name.
        role: parent or tutor ("teacher" is accepted as tutor).

    Returns:
        The created user (no session is issued).

    Raises:
        ValidationError: Password or role rejected.
        ConflictError: Email already registered.
    """
    validate_password(password)
    chosen_role = resolve_self_serve_role(role)

    if await UserRepository.get_by_email(db, email) is not None:
        raise ConflictError()

    password_hash = await hash_password(password)
    try:
        user = await UserRepository.create(
            db,
            email=email,
            role=chosen_role,
            name=name,
            password_hash=password_hash,
        )
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError() from exc

    user = await issue_verification_token(db, dispatcher, user)
    logger.info(
        "Password account created",
        extra={"user_id": str(user.id), "role": user.role},
    )
    return user


async def authenticate_password(
    db: AsyncSession,
    *,
    email: str,
    password: str,
) -> User:
    """Check email and password.

    Args:
        db: Async database session.
        email: Account email.
        password: Plain-text password.

    Returns:
        The authenticated, verified user.

    Raises:
        AuthError: Unknown email, no password set, or wrong password.
        VerificationRequiredError: Password correct but email unverified.
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None or user.password_hash is None:
        await verify_against_dummy(password)
        raise AuthError()

    if not await verify_password(password, user.password_hash):
        logger.info("Password login failed", extra={"user_id": str(user.id)})
        raise AuthError()

    if not user.is_email_verified:
        raise VerificationRequiredError(user.email)

    return user
