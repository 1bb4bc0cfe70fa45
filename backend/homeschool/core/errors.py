"""API error classes.

Every error raised by services and dependencies carries a machine-readable
code, a human-readable message and an HTTP status. One exception handler
in main.py renders them as {"error": {"code", "message", "details"}}.

Flags the client branches on (needs_verification, requires_role) travel
in details so the envelope shape never changes.
"""


class APIError(Exception):
    """Base class for API errors.

    Attributes:
        code: Machine-readable error code (e.g., "INVALID_TOKEN").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors and password rule violations.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class ConflictError(APIError):
    """Email already registered (400).

    Raised by signup and invite creation. The database unique constraint
    on users.email is the source of truth; a pre-check lookup only avoids
    hashing a password for a doomed insert.
    """

    def __init__(
        self,
        message: str = "An account with this email already exists",
        code: str = "EMAIL_ALREADY_EXISTS",
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=400,
        )


class AuthError(APIError):
    """Credentials rejected (401).

    One message for unknown email, missing password hash and wrong
    password so responses don't reveal which accounts exist.
    """

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message=message,
            status_code=401,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session is presented.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to perform the action (403).

    Use when the session is valid but the role is wrong.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class VerificationRequiredError(APIError):
    """Login attempted on an unverified account (403)."""

    def __init__(self, email: str) -> None:
        super().__init__(
            code="EMAIL_NOT_VERIFIED",
            message="Please verify your email before logging in",
            status_code=403,
            details=[{"needs_verification": True, "email": email}],
        )


class RoleRequiredError(APIError):
    """New external identity needs a role before an account exists (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="ROLE_REQUIRED",
            message="Please choose a role to finish creating your account",
            status_code=400,
            details=[{"requires_role": True}],
        )


class AccountLinkingBlockedError(APIError):
    """External identity can't be attached to the existing account (400).

    Raised when the provider has not verified the email, or when the
    account already has a different identity from the same provider.
    """

    def __init__(
        self,
        message: str = "Please sign in with your original method first",
    ) -> None:
        super().__init__(
            code="ACCOUNT_LINKING_BLOCKED",
            message=message,
            status_code=400,
        )


class InvalidTokenError(APIError):
    """Verification or reset token unknown or already used (400)."""

    def __init__(self, message: str = "Invalid or already used token") -> None:
        super().__init__(
            code="INVALID_TOKEN",
            message=message,
            status_code=400,
        )


class ExpiredTokenError(APIError):
    """Verification or reset token past its expiry (400)."""

    def __init__(self, message: str = "This link has expired") -> None:
        super().__init__(
            code="EXPIRED_TOKEN",
            message=message,
            status_code=400,
        )


class AlreadyVerifiedError(APIError):
    """Resend requested for an account that is already verified (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="ALREADY_VERIFIED",
            message="This email is already verified. You can log in.",
            status_code=400,
        )


class ResendCooldownError(APIError):
    """Verification email resent too soon (429).

    Args:
        retry_after: Seconds until another resend is allowed.
    """

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            code="RESEND_COOLDOWN",
            message=f"Please wait {retry_after} seconds before requesting another email",
            status_code=429,
            details=[{"retry_after": retry_after}],
            headers={"Retry-After": str(retry_after)},
        )


class InvalidInviteError(APIError):
    """Invite token unknown or already accepted (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_INVITE",
            message="Invalid or already used invitation",
            status_code=400,
        )


class ExpiredInviteError(APIError):
    """Invite token past its expiry date (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="EXPIRED_INVITE",
            message="This invitation has expired. Ask your parent to send a new one.",
            status_code=400,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
