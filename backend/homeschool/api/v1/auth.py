"""Password signup, login, logout and current user.

Every successful login regenerates the session: the session the client
presented (if any) is destroyed before a new one is created. The new
session id is returned as session_token and set as an httpOnly cookie;
either transport works for later requests.
"""

from fastapi import APIRouter, Request, Response

from homeschool.api.deps import (
    CurrentSession,
    CurrentUser,
    DbSession,
    Dispatcher,
    SessionStoreDep,
    extract_session_id,
)
from homeschool.core.auth import clear_session_cookie, set_session_cookie
from homeschool.core.config import settings
from homeschool.core.rate_limiting import limiter
from homeschool.core.responses import DataResponse
from homeschool.schemas.auth import (
    LoginRequest,
    LogoutResponse,
    SessionResponse,
    SignupRequest,
    SignupResponse,
    UserResponse,
)
from homeschool.services.authentication import (
    PasswordCredentials,
    authenticate,
    establish_session,
)
from homeschool.services.password_auth import SIGNUP_MESSAGE, signup

router = APIRouter()


# ===================================================================
# POST /auth/signup
# ===================================================================


@router.post("/signup", status_code=201)
@limiter.limit(lambda: settings.rate_limit_auth)
async def signup_with_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SignupRequest,
    db: DbSession,
    dispatcher: Dispatcher,
) -> DataResponse[SignupResponse]:
    """Create an unverified password account and email a verification link.

    No session is created; the user must verify before logging in.
    """
    user = await signup(
        db,
        dispatcher,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role,
    )
    return DataResponse(
        data=SignupResponse(user=UserResponse.from_user(user), message=SIGNUP_MESSAGE)
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit(lambda: settings.rate_limit_auth)
async def login(
    request: Request,
    body: LoginRequest,
    response: Response,
    db: DbSession,
    store: SessionStoreDep,
) -> DataResponse[SessionResponse]:
    """Log in with email and password.

    401 for any credential mismatch; 403 with needs_verification when the
    password is right but the email is unverified.
    """
    authenticated = await authenticate(
        db, PasswordCredentials(email=body.email, password=body.password)
    )
    session = await establish_session(
        store, authenticated, previous_session_id=extract_session_id(request)
    )
    set_session_cookie(response, session.session_id)
    return DataResponse(
        data=SessionResponse(
            user=UserResponse.from_user(authenticated.user),
            session_token=session.session_id,
        )
    )


# ===================================================================
# POST /auth/logout, /auth/logout-all
# ===================================================================


@router.post("/logout")
async def logout(
    session: CurrentSession,
    response: Response,
    store: SessionStoreDep,
) -> DataResponse[LogoutResponse]:
    """End the current session and clear the session cookie."""
    await store.destroy(session.session_id)
    clear_session_cookie(response)
    return DataResponse(data=LogoutResponse())


@router.post("/logout-all")
async def logout_everywhere(
    session: CurrentSession,
    response: Response,
    store: SessionStoreDep,
) -> DataResponse[LogoutResponse]:
    """End every session of the current user, on all devices."""
    revoked = await store.destroy_all_for_user(session.user_id)
    clear_session_cookie(response)
    return DataResponse(data=LogoutResponse(revoked=revoked))


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def get_me(user: CurrentUser) -> DataResponse[UserResponse]:
    """Current user."""
    return DataResponse(data=UserResponse.from_user(user))
