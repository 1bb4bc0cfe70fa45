"""Verification and password-reset tokens.

Both token kinds are random, single-use and time-bounded. Only their
SHA-256 digest is stored on the user row, in a (token, expiry) pair that
is always set and cleared together. The two pairs are independent:
consuming one never touches the other.

Responses to resend and forgot-password are identical whether or not the
email exists, so they can't be used to discover accounts.
"""

import logging
import math
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.auth import hash_password, validate_password
from homeschool.core.config import settings
from homeschool.core.email import NotificationDispatcher
from homeschool.core.errors import (
    AlreadyVerifiedError,
    ExpiredTokenError,
    InvalidTokenError,
    ResendCooldownError,
)
from homeschool.core.sessions import SessionStore
from homeschool.core.tokens import hash_token, is_expired, issue_token
from homeschool.models.user import User
from homeschool.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

GENERIC_RESEND_MESSAGE = (
    "If an account exists with this email, a verification email has been sent."
)
GENERIC_RESET_MESSAGE = (
    "If an account exists with this email, a password reset link has been sent."
)


def _verification_ttl() -> timedelta:
    return timedelta(hours=settings.verification_token_ttl_hours)


def _reset_ttl() -> timedelta:
    return timedelta(minutes=settings.password_reset_token_ttl_minutes)


async def issue_verification_token(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    user: User,
) -> User:
    """Replace the user's verification token and email the new link.

    Args:
        db: Async database session.
        dispatcher: Email dispatcher (delivery failures are only logged).
        user: User to verify.

    Returns:
        The updated user.
    """
    plain, digest, expires_at = issue_token(_verification_ttl())
    updated = await UserRepository.update(
        db,
        user.id,
        verification_token=digest,
        verification_token_expiry=expires_at,
    )
    dispatcher.send_verification_email(
        to=user.email, name=user.name, token=plain, db=db
    )
    logger.info("Issued verification token", extra={"user_id": str(user.id)})
    return updated or user


async def consume_verification_token(db: AsyncSession, token: str) -> User:
    """Mark the token owner's email as verified.

    Clicking the same link twice succeeds both times: the digest of the
    last consumed token is remembered on the user.

    Args:
        db: Async database session.
        token: Plain token from the emailed link.

    Returns:
        The verified user.

    Raises:
        InvalidTokenError: Token unknown.
        ExpiredTokenError: Token past its expiry.
    """
    digest = hash_token(token)
    user = await UserRepository.get_by_verification_token(db, digest)

    if user is None:
        consumed_by = await UserRepository.get_by_consumed_verification_token(
            db, digest
        )
        if consumed_by is not None and consumed_by.is_email_verified:
            return consumed_by
        raise InvalidTokenError("Invalid or expired verification link")

    if user.is_email_verified:
        await UserRepository.update(
            db,
            user.id,
            verification_token=None,
            verification_token_expiry=None,
            consumed_verification_token=digest,
        )
        return user

    if is_expired(user.verification_token_expiry):
        raise ExpiredTokenError(
            "This verification link has expired. Please request a new one."
        )

    verified = await UserRepository.update(
        db,
        user.id,
        is_email_verified=True,
        verification_token=None,
        verification_token_expiry=None,
        consumed_verification_token=digest,
    )
    logger.info("Email verified", extra={"user_id": str(user.id)})
    return verified or user


async def resend_verification(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    email: str,
) -> str:
    """Send a fresh verification link if the account is waiting for one.

    Args:
        db: Async database session.
        dispatcher: Email dispatcher.
        email: Address to resend to.

    Returns:
        The generic confirmation message.

    Raises:
        AlreadyVerifiedError: The account is already verified.
        ResendCooldownError: The previous link was sent too recently.
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        return GENERIC_RESEND_MESSAGE

    if user.is_email_verified:
        raise AlreadyVerifiedError()

    if user.verification_token_expiry is not None:
        issued_at = user.verification_token_expiry - _verification_ttl()
        elapsed = (datetime.now(UTC) - issued_at).total_seconds()
        cooldown = settings.resend_verification_cooldown_seconds
        if elapsed < cooldown:
            raise ResendCooldownError(max(1, math.ceil(cooldown - elapsed)))

    await issue_verification_token(db, dispatcher, user)
    return GENERIC_RESEND_MESSAGE


async def request_password_reset(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    email: str,
) -> str:
    """Email a reset link if the account exists.

    Args:
        db: Async database session.
        dispatcher: Email dispatcher.
        email: Address of the account.

    Returns:
        The generic confirmation message, whatever happened.
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return GENERIC_RESET_MESSAGE

    plain, digest, expires_at = issue_token(_reset_ttl())
    await UserRepository.update(
        db,
        user.id,
        password_reset_token=digest,
        password_reset_token_expiry=expires_at,
    )
    dispatcher.send_password_reset_email(
        to=user.email, name=user.name, token=plain, db=db
    )
    logger.info("Issued password reset token", extra={"user_id": str(user.id)})
    return GENERIC_RESET_MESSAGE


async def consume_password_reset(
    db: AsyncSession,
    session_store: SessionStore,
    token: str,
    new_password: str,
) -> User:
    """Set a new password using a reset token.

    Every session of the user is revoked afterwards, so a stolen session
    doesn't survive the reset.

    Args:
        db: Async database session.
        session_store: Store holding the user's sessions.
        token: Plain token from the emailed link.
        new_password: Replacement password.

    Returns:
        The updated user.

    Raises:
        ValidationError: New password breaks the length rule.
        InvalidTokenError: Token unknown or already used.
        ExpiredTokenError: Token past its expiry.
    """
    validate_password(new_password)

    user = await UserRepository.get_by_reset_token(db, hash_token(token))
    if user is None:
        raise InvalidTokenError("Invalid or expired reset link")
    if is_expired(user.password_reset_token_expiry):
        raise ExpiredTokenError("This reset link has expired. Please request a new one.")

    password_hash = await hash_password(new_password)
    updated = await UserRepository.update(
        db,
        user.id,
        password_hash=password_hash,
        password_reset_token=None,
        password_reset_token_expiry=None,
    )
    revoked = await session_store.destroy_all_for_user(user.id)
    logger.info(
        "Password reset",
        extra={"user_id": str(user.id), "sessions_revoked": revoked},
    )
    return updated or user
