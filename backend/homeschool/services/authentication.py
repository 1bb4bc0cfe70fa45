"""Login method dispatch and session establishment.

Each way of logging in is one variant of LoginMethod. authenticate()
maps the variant onto the right authenticator, and establish_session()
turns the resulting user into a fresh session, whatever the method.
"""

import logging
from dataclasses import dataclass

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.sessions import AuthSession, LoginMethodName, SessionStore
from homeschool.models.user import User
from homeschool.services.external_auth import sign_in_federated, sign_in_with_google
from homeschool.services.password_auth import authenticate_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasswordCredentials:
    """Email and password typed into the login form."""

    email: str
    password: str


@dataclass(frozen=True)
class OAuthAssertion:
    """Google ID token plus the role picked for a first sign-in."""

    id_token: str
    role: str | None = None


@dataclass(frozen=True)
class FederatedProfile:
    """Profile forwarded by the client identity SDK."""

    uid: str
    email: str
    display_name: str | None = None
    photo_url: str | None = None
    role: str | None = None


LoginMethod = PasswordCredentials | OAuthAssertion | FederatedProfile


@dataclass(frozen=True)
class AuthenticatedUser:
    """Result of a successful authentication."""

    user: User
    method: LoginMethodName


async def authenticate(
    db: AsyncSession,
    method: LoginMethod,
    *,
    jwks_client: jwt.PyJWKClient | None = None,
) -> AuthenticatedUser:
    """Authenticate with any supported login method.

    Args:
        db: Async database session.
        method: Credentials of one login method.
        jwks_client: Signing key source for OAuth ID tokens.

    Returns:
        The user and the method name recorded on the session.
    """
    match method:
        case PasswordCredentials(email=email, password=password):
            user = await authenticate_password(db, email=email, password=password)
            return AuthenticatedUser(user=user, method="password")
        case OAuthAssertion(id_token=id_token, role=role):
            user, _ = await sign_in_with_google(
                db, id_token=id_token, role=role, jwks_client=jwks_client
            )
            return AuthenticatedUser(user=user, method="oauth")
        case FederatedProfile():
            user, _ = await sign_in_federated(
                db,
                uid=method.uid,
                email=method.email,
                display_name=method.display_name,
                photo_url=method.photo_url,
                role=method.role,
            )
            return AuthenticatedUser(user=user, method="federated")
    msg = f"Unsupported login method: {type(method).__name__}"
    raise TypeError(msg)


async def establish_session(
    session_store: SessionStore,
    authenticated: AuthenticatedUser,
    *,
    previous_session_id: str | None,
) -> AuthSession:
    """Issue a fresh session for an authenticated user.

    Any session the client presented is destroyed first.

    Args:
        session_store: Session registry.
        authenticated: Output of authenticate().
        previous_session_id: Session id sent with the login request.

    Returns:
        The new session.
    """
    user = authenticated.user
    session = await session_store.regenerate(
        previous_session_id,
        user_id=user.id,
        role=user.role,
        method=authenticated.method,
        email=user.email,
        name=user.name,
        profile_picture=user.profile_picture,
    )
    logger.info(
        "Session established",
        extra={"user_id": str(user.id), "method": authenticated.method},
    )
    return session
