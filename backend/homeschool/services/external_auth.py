"""Sign-in through external identity providers.

Google sign-in posts an ID token that is verified here. The federated
bridge receives a profile the client-side identity SDK already
authenticated. Both feed the shared find-or-link-or-create core.
"""

import logging

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.account_linking import (
    ExternalIdentity,
    LinkOutcome,
    find_or_link_or_create_user,
)
from homeschool.core.config import settings
from homeschool.core.oauth import verify_identity_assertion
from homeschool.models.user import User

logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"
FEDERATED_PROVIDER = "federated"


async def sign_in_with_google(
    db: AsyncSession,
    *,
    id_token: str,
    role: str | None,
    jwks_client: jwt.PyJWKClient | None = None,
) -> tuple[User, LinkOutcome]:
    """Verify a Google ID token and resolve it to a user.

    Args:
        db: Async database session.
        id_token: ID token from Google Sign-In.
        role: Role for a first-time user.
        jwks_client: Signing key source (defaults to Google's JWKS).

    Returns:
        Tuple of (User, outcome).

    Raises:
        AuthError: Token invalid.
        RoleRequiredError: First sign-in without a role.
    """
    verified = await verify_identity_assertion(
        id_token,
        client_id=settings.google_client_id,
        jwks_client=jwks_client,
    )
    identity = ExternalIdentity(
        provider=GOOGLE_PROVIDER,
        subject=verified.subject,
        email=verified.email,
        email_verified=verified.email_verified,
        name=verified.name,
        picture=verified.picture,
    )
    return await find_or_link_or_create_user(db, identity, role=role)


async def sign_in_federated(
    db: AsyncSession,
    *,
    uid: str,
    email: str,
    display_name: str | None,
    photo_url: str | None,
    role: str | None,
) -> tuple[User, LinkOutcome]:
    """Resolve a profile forwarded from the client identity SDK.

    The SDK authenticated the person in the browser; the backend trusts
    the forwarded uid and email as-is.

    Args:
        db: Async database session.
        uid: SDK user id.
        email: Email from the SDK profile.
        display_name: Name from the SDK profile.
        photo_url: Avatar from the SDK profile.
        role: Role for a first-time user.

    Returns:
        Tuple of (User, outcome).
    """
    identity = ExternalIdentity(
        provider=FEDERATED_PROVIDER,
        subject=uid,
        email=email,
        email_verified=True,
        name=display_name,
        picture=photo_url,
    )
    return await find_or_link_or_create_user(db, identity, role=role)
