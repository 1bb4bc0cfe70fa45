"""Rate limiting for the unauthenticated identity endpoints.

Login, signup, reset and resend are keyed on the client address, which
slows down credential stuffing and keeps anyone from flooding a mailbox.
Limits are counted in Redis whenever sessions are, so every instance
sees the same counters; otherwise they live in process memory.

Usage in routers:
    from homeschool.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit(lambda: settings.rate_limit_auth)
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from homeschool.core.config import settings

_DEFAULT_RETRY_AFTER = 60


def _storage_uri() -> str:
    if settings.session_backend == "redis":
        return settings.redis_url
    return "memory://"


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    enabled=settings.rate_limit_enabled,
)


def _retry_after_seconds(exc: RateLimitExceeded) -> int:
    """Length of the exceeded window, which bounds the wait."""
    try:
        return int(exc.limit.limit.get_expiry())
    except (AttributeError, TypeError, ValueError):
        return _DEFAULT_RETRY_AFTER


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Answer 429 RATE_LIMITED in the standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with a Retry-After header.
    """
    retry_after = _retry_after_seconds(exc)
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
                "details": [{"retry_after": retry_after}],
            }
        },
        headers={"Retry-After": str(retry_after)},
    )
