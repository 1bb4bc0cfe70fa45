"""Shared dependencies for API endpoints.

Session resolution: one path for every client. The session id is read
from the Authorization bearer header first, then from the session
cookie, and looked up in the session store. A header that isn't a live
session is rejected, never trusted.

The session store and email dispatcher are created in the application
lifespan and read from app.state, so tests can swap them.
"""

import uuid
from collections.abc import Awaitable, Callable
from typing import Annotated

import jwt
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.config import settings
from homeschool.core.database import get_db
from homeschool.core.email import NotificationDispatcher
from homeschool.core.errors import ForbiddenError, UnauthorizedError
from homeschool.core.oauth import get_jwks_client
from homeschool.core.sessions import AuthSession, SessionStore
from homeschool.models import User
from homeschool.repositories.user_repository import UserRepository

_BEARER_PREFIX = "bearer "


def get_session_store(request: Request) -> SessionStore:
    """Session store built at startup."""
    return request.app.state.session_store


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """Email dispatcher built at startup."""
    return request.app.state.dispatcher


def get_identity_keys() -> jwt.PyJWKClient:
    """Signing keys for Google ID tokens."""
    return get_jwks_client()


def extract_session_id(request: Request) -> str | None:
    """Read the session id from the bearer header or the session cookie.

    Args:
        request: HTTP request.

    Returns:
        The presented session id, or None if neither transport carries one.
    """
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith(_BEARER_PREFIX):
        token = authorization[len(_BEARER_PREFIX) :].strip()
        if token:
            return token
    return request.cookies.get(settings.session_cookie_name) or None


async def get_optional_session(
    request: Request,
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> AuthSession | None:
    """Resolve the presented session, if any and still valid."""
    session_id = extract_session_id(request)
    if session_id is None:
        return None
    return await store.get(session_id)


async def get_current_session(
    session: Annotated[AuthSession | None, Depends(get_optional_session)],
) -> AuthSession:
    """Require a valid session.

    Raises:
        UnauthorizedError: Missing, unknown or expired session.
    """
    if session is None:
        raise UnauthorizedError()
    return session


async def get_current_user(
    session: Annotated[AuthSession, Depends(get_current_session)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Load the user behind the current session.

    A session whose user was deleted is destroyed and rejected.

    Raises:
        UnauthorizedError: The user no longer exists.
    """
    user = await UserRepository.get_by_id(db, session.user_id)
    if user is None:
        await store.destroy(session.session_id)
        raise UnauthorizedError()
    return user


def require_role(*roles: str) -> Callable[..., Awaitable[User]]:
    """Dependency factory that restricts an endpoint to some roles.

    Usage:
        @router.post("/invites/student")
        async def create(parent: Annotated[User, Depends(require_role("parent"))]):
            ...

    Args:
        roles: Allowed roles.

    Returns:
        Dependency returning the current user.
    """

    async def _check_role(
        user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if user.role not in roles:
            raise ForbiddenError()
        return user

    return _check_role


DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
IdentityKeys = Annotated[jwt.PyJWKClient, Depends(get_identity_keys)]
CurrentSession = Annotated[AuthSession, Depends(get_current_session)]
CurrentUser = Annotated[User, Depends(get_current_user)]
ParentUser = Annotated[User, Depends(require_role("parent"))]
