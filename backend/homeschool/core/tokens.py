"""Random single-use tokens for verification, password reset and invites.

Plain tokens leave the server only inside emailed links. The database
stores the SHA-256 digest so a leaked table can't be replayed.
"""

import hashlib
import secrets
from datetime import UTC, datetime, timedelta

# 32 random bytes -> 43 URL-safe characters
_TOKEN_BYTES = 32


def generate_token() -> str:
    """Generate a URL-safe random token."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a plain token (64 chars)."""
    return hashlib.sha256(token.encode()).hexdigest()


def issue_token(ttl: timedelta, *, now: datetime | None = None) -> tuple[str, str, datetime]:
    """Create a token with its stored digest and absolute expiry.

    Args:
        ttl: How long the token stays valid.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        Tuple of (plain token, digest, expires_at).
    """
    plain = generate_token()
    issued_at = now or datetime.now(UTC)
    return plain, hash_token(plain), issued_at + ttl


def is_expired(expires_at: datetime | None, *, now: datetime | None = None) -> bool:
    """Check whether an expiry timestamp has passed.

    A missing expiry counts as expired.
    """
    if expires_at is None:
        return True
    return expires_at < (now or datetime.now(UTC))
