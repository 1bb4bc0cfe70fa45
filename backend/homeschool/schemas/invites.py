"""Student invite request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from homeschool.models.student import StudentInvite, StudentProfile
from homeschool.schemas.auth import UserResponse


class CreateInviteRequest(BaseModel):
    """Request body for POST /invites/student."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    student_name: str = Field(min_length=1, max_length=255)
    grade_level: str | None = Field(default=None, max_length=50)


class InviteResponse(BaseModel):
    """An invite as shown to the parent. The invite code is never returned."""

    id: uuid.UUID
    email: str
    student_name: str
    grade_level: str | None
    status: str
    created_date: datetime
    expires_date: datetime
    accepted_at: datetime | None

    @classmethod
    def from_invite(cls, invite: StudentInvite) -> "InviteResponse":
        """Build the response from a StudentInvite row."""
        return cls(
            id=invite.id,
            email=invite.email,
            student_name=invite.student_name,
            grade_level=invite.grade_level,
            status=invite.status,
            created_date=invite.created_date,
            expires_date=invite.expires_date,
            accepted_at=invite.accepted_at,
        )


class StudentSignupRequest(BaseModel):
    """Request body for POST /auth/signup/student."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=1024)


class StudentProfileResponse(BaseModel):
    """Student profile linking a student to their parent."""

    id: uuid.UUID
    user_id: uuid.UUID
    parent_id: uuid.UUID
    grade_level: str | None

    @classmethod
    def from_profile(cls, profile: StudentProfile) -> "StudentProfileResponse":
        """Build the response from a StudentProfile row."""
        return cls(
            id=profile.id,
            user_id=profile.user_id,
            parent_id=profile.parent_id,
            grade_level=profile.grade_level,
        )


class StudentSignupResponse(BaseModel):
    """Created student, their profile, and next-step message."""

    user: UserResponse
    student_profile: StudentProfileResponse
    message: str
