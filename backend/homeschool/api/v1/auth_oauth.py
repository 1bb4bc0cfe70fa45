"""Google sign-in with an ID token.

The browser completes Google Sign-In and posts the resulting ID token.
First-time users must also send a role; without one the response is 400
with requires_role so the client can ask and retry.
"""

from fastapi import APIRouter, Request, Response

from homeschool.api.deps import (
    DbSession,
    IdentityKeys,
    SessionStoreDep,
    extract_session_id,
)
from homeschool.core.auth import set_session_cookie
from homeschool.core.config import settings
from homeschool.core.rate_limiting import limiter
from homeschool.core.responses import DataResponse
from homeschool.schemas.auth import OAuthSignInRequest, SessionResponse, UserResponse
from homeschool.services.authentication import (
    OAuthAssertion,
    authenticate,
    establish_session,
)

router = APIRouter()


@router.post("/oauth-signin")
@limiter.limit(lambda: settings.rate_limit_auth)
async def oauth_sign_in(
    request: Request,
    body: OAuthSignInRequest,
    response: Response,
    db: DbSession,
    store: SessionStoreDep,
    keys: IdentityKeys,
) -> DataResponse[SessionResponse]:
    """Sign in or sign up with a Google ID token."""
    authenticated = await authenticate(
        db,
        OAuthAssertion(id_token=body.id_token, role=body.role),
        jwks_client=keys,
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
