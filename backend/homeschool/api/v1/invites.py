"""Student invites: parents send them, students redeem them at signup."""

from fastapi import APIRouter, Request

from homeschool.api.deps import DbSession, Dispatcher, ParentUser
from homeschool.core.config import settings
from homeschool.core.rate_limiting import limiter
from homeschool.core.responses import DataResponse
from homeschool.schemas.auth import UserResponse
from homeschool.schemas.invites import (
    CreateInviteRequest,
    InviteResponse,
    StudentProfileResponse,
    StudentSignupRequest,
    StudentSignupResponse,
)
from homeschool.services import invite_service

router = APIRouter()


@router.post("/invites/student", status_code=201)
@limiter.limit(lambda: settings.rate_limit_email)
async def create_student_invite(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: CreateInviteRequest,
    parent: ParentUser,
    db: DbSession,
    dispatcher: Dispatcher,
) -> DataResponse[InviteResponse]:
    """Invite a student by email (parents only)."""
    invite = await invite_service.create_invite(
        db,
        dispatcher,
        parent=parent,
        email=body.email,
        student_name=body.student_name,
        grade_level=body.grade_level,
    )
    return DataResponse(data=InviteResponse.from_invite(invite))


@router.get("/invites/student")
async def list_student_invites(
    parent: ParentUser,
    db: DbSession,
) -> DataResponse[list[InviteResponse]]:
    """Invites sent by the current parent, newest first."""
    invites = await invite_service.list_invites(db, parent)
    return DataResponse(data=[InviteResponse.from_invite(i) for i in invites])


@router.post("/auth/signup/student", status_code=201)
@limiter.limit(lambda: settings.rate_limit_auth)
async def signup_student(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: StudentSignupRequest,
    db: DbSession,
    dispatcher: Dispatcher,
) -> DataResponse[StudentSignupResponse]:
    """Create a student account from an invite code.

    The account starts unverified; no session is issued.
    """
    student, profile = await invite_service.redeem_invite(
        db, dispatcher, token=body.token, password=body.password
    )
    return DataResponse(
        data=StudentSignupResponse(
            user=UserResponse.from_user(student),
            student_profile=StudentProfileResponse.from_profile(profile),
            message=invite_service.STUDENT_SIGNUP_MESSAGE,
        )
    )
