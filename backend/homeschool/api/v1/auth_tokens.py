"""Email verification and password reset endpoints.

Resend and forgot-password answer with the same message whether or not
the email has an account.
"""

from fastapi import APIRouter, Request

from homeschool.api.deps import DbSession, Dispatcher, SessionStoreDep
from homeschool.core.config import settings
from homeschool.core.rate_limiting import limiter
from homeschool.core.responses import DataResponse
from homeschool.schemas.auth import EmailRequest, MessageResponse, ResetPasswordRequest
from homeschool.services import token_manager

router = APIRouter()


@router.get("/verify-email/{token}")
@limiter.limit(lambda: settings.rate_limit_auth)
async def verify_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    token: str,
    db: DbSession,
) -> DataResponse[MessageResponse]:
    """Consume a verification token. Repeating a used link still succeeds."""
    await token_manager.consume_verification_token(db, token)
    return DataResponse(
        data=MessageResponse(message="Email verified. You can now log in.")
    )


@router.post("/resend-verification")
@limiter.limit(lambda: settings.rate_limit_email)
async def resend_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    dispatcher: Dispatcher,
) -> DataResponse[MessageResponse]:
    """Send a new verification link (subject to a cooldown)."""
    message = await token_manager.resend_verification(db, dispatcher, body.email)
    return DataResponse(data=MessageResponse(message=message))


@router.post("/forgot-password")
@limiter.limit(lambda: settings.rate_limit_email)
async def forgot_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    dispatcher: Dispatcher,
) -> DataResponse[MessageResponse]:
    """Email a password reset link if the account exists."""
    message = await token_manager.request_password_reset(db, dispatcher, body.email)
    return DataResponse(data=MessageResponse(message=message))


@router.post("/reset-password")
@limiter.limit(lambda: settings.rate_limit_auth)
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    db: DbSession,
    store: SessionStoreDep,
) -> DataResponse[MessageResponse]:
    """Set a new password and sign out every existing session."""
    await token_manager.consume_password_reset(db, store, body.token, body.password)
    return DataResponse(
        data=MessageResponse(
            message="Password updated. Please log in with your new password."
        )
    )
