"""API v1 router aggregator.

All v1 endpoint routers are included here and mounted at /api/v1.
"""

from fastapi import APIRouter

from homeschool.api.v1 import auth, auth_federated, auth_oauth, auth_tokens, invites

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_oauth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_federated.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_tokens.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Student invites
# =============================================================================

router.include_router(invites.router, tags=["invites"])
