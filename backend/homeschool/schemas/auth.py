"""Auth API request/response schemas.

Request schemas use ConfigDict(extra="forbid") to reject unexpected
fields. Password length rules are applied by the services so every
entry point reports them the same way; the schemas only cap the size.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from homeschool.models.user import SELF_SERVE_ROLES, User, normalize_role

# Upper bound on accepted password input before hashing rules apply
_MAX_PASSWORD_INPUT = 1024


def _validate_self_serve_role(value: str | None) -> str | None:
    """Normalize a role and allow only roles people can pick themselves."""
    if value is None:
        return None
    role = normalize_role(value)
    if role not in SELF_SERVE_ROLES:
        msg = f"role must be one of: {', '.join(SELF_SERVE_ROLES)}"
        raise ValueError(msg)
    return role


class UserResponse(BaseModel):
    """Public view of a user. Never includes password or token fields."""

    id: uuid.UUID
    email: str
    name: str | None
    role: str
    is_email_verified: bool
    profile_picture: str | None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build the public view of a User row."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_email_verified=user.is_email_verified,
            profile_picture=user.profile_picture,
            created_at=user.created_at,
        )


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(max_length=_MAX_PASSWORD_INPUT)
    name: str = Field(min_length=1, max_length=255)
    role: str

    @field_validator("role")
    @classmethod
    def check_role(cls, value: str) -> str:
        return _validate_self_serve_role(value)  # type: ignore[return-value]


class SignupResponse(BaseModel):
    """Created user plus the "verify before login" message."""

    user: UserResponse
    message: str


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=_MAX_PASSWORD_INPUT)


class SessionResponse(BaseModel):
    """Authenticated user and the session token (also set as a cookie)."""

    user: UserResponse
    session_token: str


class OAuthSignInRequest(BaseModel):
    """Request body for POST /auth/oauth-signin."""

    model_config = ConfigDict(extra="forbid")

    id_token: str = Field(min_length=1, max_length=8192)
    role: str | None = None

    @field_validator("role")
    @classmethod
    def check_role(cls, value: str | None) -> str | None:
        return _validate_self_serve_role(value)


class FederatedLoginRequest(BaseModel):
    """Request body for POST /auth/federated-login.

    Profile fields as reported by the client identity SDK.
    """

    model_config = ConfigDict(extra="forbid")

    uid: str = Field(min_length=1, max_length=255)
    email: EmailStr
    display_name: str | None = Field(default=None, max_length=255)
    photo_url: str | None = Field(default=None, max_length=2048)
    role: str | None = None

    @field_validator("role")
    @classmethod
    def check_role(cls, value: str | None) -> str | None:
        return _validate_self_serve_role(value)


class EmailRequest(BaseModel):
    """Request body carrying only an email (resend, forgot-password)."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=_MAX_PASSWORD_INPUT)


class MessageResponse(BaseModel):
    """Outcome flag with a human-readable message."""

    success: bool = True
    message: str


class LogoutResponse(BaseModel):
    """Logout outcome. revoked counts sessions ended by logout-all."""

    success: bool = True
    revoked: int | None = None
