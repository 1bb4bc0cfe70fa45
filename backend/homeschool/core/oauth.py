"""Identity assertion verification for Google Sign-In.

The client obtains an ID token (a JWT signed by Google) and posts it to
the backend. The token is only trusted after checking:
- RS256 signature against Google's published JWKS
- audience equals our GOOGLE_CLIENT_ID
- issuer is one of Google's issuers
- exp is in the future (PyJWT enforces this)
"""

import logging
from dataclasses import dataclass

import jwt
from starlette.concurrency import run_in_threadpool

from homeschool.core.errors import AuthError, ValidationError

logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

# Allow small clock drift between Google and this server (seconds)
_LEEWAY_SECONDS = 30

_jwks_client: jwt.PyJWKClient | None = None


@dataclass(frozen=True)
class VerifiedIdentity:
    """Claims extracted from a verified ID token.

    Attributes:
        subject: Provider's stable user id (the "sub" claim).
        email: Email claim, lower-cased.
        email_verified: Whether the provider verified the email.
        name: Display name claim.
        picture: Avatar URL claim.
    """

    subject: str
    email: str
    email_verified: bool
    name: str | None
    picture: str | None


def get_jwks_client() -> jwt.PyJWKClient:
    """Shared JWKS client (caches Google's signing keys)."""
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(GOOGLE_JWKS_URL, cache_keys=True)
    return _jwks_client


async def verify_identity_assertion(
    assertion: str,
    *,
    client_id: str,
    jwks_client: jwt.PyJWKClient | None = None,
    issuers: tuple[str, ...] = GOOGLE_ISSUERS,
) -> VerifiedIdentity:
    """Verify a Google ID token and extract the identity claims.

    Key fetch and signature check run in the threadpool because
    PyJWKClient does blocking HTTP.

    Args:
        assertion: Raw ID token from the client.
        client_id: Expected audience.
        jwks_client: Key source. Defaults to Google's JWKS endpoint.
        issuers: Accepted issuer values.

    Returns:
        VerifiedIdentity with the token's claims.

    Raises:
        ValidationError: If no client id is configured.
        AuthError: If the token fails any check.
    """
    if not client_id:
        raise ValidationError("Google sign-in is not configured")

    keys = jwks_client or get_jwks_client()
    try:
        signing_key = await run_in_threadpool(keys.get_signing_key_from_jwt, assertion)
        claims = await run_in_threadpool(
            jwt.decode,
            assertion,
            signing_key.key,
            algorithms=["RS256"],
            audience=client_id,
            issuer=list(issuers),
            leeway=_LEEWAY_SECONDS,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )
    except jwt.PyJWTError as exc:
        logger.info("Rejected identity assertion", extra={"reason": type(exc).__name__})
        raise AuthError("Invalid identity token") from exc

    email = claims.get("email")
    if not email:
        raise AuthError("Identity token has no email")

    return VerifiedIdentity(
        subject=str(claims["sub"]),
        email=email.strip().lower(),
        email_verified=claims.get("email_verified") in (True, "true"),
        name=claims.get("name"),
        picture=claims.get("picture"),
    )
