"""Password hashing and session cookie management.

Shared utilities used by auth endpoints and services.

Pipeline:
- validate_password: Length rules (sync, no network)
- hash_password / verify_password: bcrypt in the threadpool
- verify_against_dummy: Timing-safe comparison for user enumeration defense
- set_session_cookie / clear_session_cookie: Same attributes both ways
"""

import functools

import bcrypt
from fastapi import Response
from starlette.concurrency import run_in_threadpool

from homeschool.core.config import BCRYPT_MAX_PASSWORD_BYTES, settings
from homeschool.core.errors import ValidationError


def validate_password(password: str) -> None:
    """Validate password length.

    Only a minimum length is enforced. Passwords longer than 72 bytes are
    rejected because bcrypt silently ignores the remainder.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If the password is too short or too long.
    """
    if len(password) < settings.password_min_length:
        raise ValidationError(
            f"Password must be at least {settings.password_min_length} characters"
        )
    if len(password.encode()) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes"
        )


def _hash_sync(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _check_sync(password: str, password_hash: bytes) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash)


async def hash_password(password: str) -> str:
    """Hash a password with bcrypt off the event loop."""
    return await run_in_threadpool(_hash_sync, password, settings.bcrypt_rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    """Compare a password with a stored bcrypt hash off the event loop."""
    return await run_in_threadpool(_check_sync, password, password_hash.encode())


@functools.cache
def _dummy_hash(rounds: int) -> bytes:
    # Same cost as real hashes so missing-user logins take as long as misses
    return bcrypt.hashpw(b"dummy-password-for-timing", bcrypt.gensalt(rounds=rounds))


async def verify_against_dummy(password: str) -> None:
    """Burn one bcrypt comparison when there is no real hash to check.

    Prevents user enumeration via response time differences.
    """
    dummy = await run_in_threadpool(_dummy_hash, settings.bcrypt_rounds)
    await run_in_threadpool(_check_sync, password, dummy)


def set_session_cookie(response: Response, session_id: str) -> None:
    """Set the httpOnly session cookie on a response.

    httpOnly keeps the session id away from page scripts. Secure and
    SameSite come from settings.

    Args:
        response: FastAPI response object.
        session_id: Opaque session identifier.
    """
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
        max_age=settings.session_ttl_hours * 3600,
        domain=settings.session_cookie_domain or None,
    )


def clear_session_cookie(response: Response) -> None:
    """Delete the session cookie.

    Browsers only drop a cookie when path, domain, secure and samesite
    match the ones it was set with.
    """
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
        domain=settings.session_cookie_domain or None,
    )
