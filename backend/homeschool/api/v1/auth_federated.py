"""Federated identity bridge.

The client-side identity SDK authenticates the person and the browser
forwards the profile here. The response carries the user and sets the
session cookie; there is no separate token in the body.
"""

from fastapi import APIRouter, Request, Response

from homeschool.api.deps import DbSession, SessionStoreDep, extract_session_id
from homeschool.core.auth import set_session_cookie
from homeschool.core.config import settings
from homeschool.core.rate_limiting import limiter
from homeschool.core.responses import DataResponse
from homeschool.schemas.auth import FederatedLoginRequest, UserResponse
from homeschool.services.authentication import (
    FederatedProfile,
    authenticate,
    establish_session,
)

router = APIRouter()


@router.post("/federated-login")
@limiter.limit(lambda: settings.rate_limit_auth)
async def federated_login(
    request: Request,
    body: FederatedLoginRequest,
    response: Response,
    db: DbSession,
    store: SessionStoreDep,
) -> DataResponse[UserResponse]:
    """Establish a session from a federated SDK profile."""
    authenticated = await authenticate(
        db,
        FederatedProfile(
            uid=body.uid,
            email=body.email,
            display_name=body.display_name,
            photo_url=body.photo_url,
            role=body.role,
        ),
    )
    session = await establish_session(
        store, authenticated, previous_session_id=extract_session_id(request)
    )
    set_session_cookie(response, session.session_id)
    return DataResponse(data=UserResponse.from_user(authenticated.user))
