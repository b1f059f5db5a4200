"""
API Router

Everything tenant-facing is mounted under /api; the operator console lives
in ``app.api.admin`` under /admin.
"""

from fastapi import APIRouter

from . import auth, invitations, organizations, passkeys, signup, tokens

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(passkeys.router, prefix="/auth/passkey", tags=["Passkeys"])
router.include_router(tokens.router, prefix="/auth/tokens", tags=["Tokens"])
router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(invitations.router, tags=["Invitations"])
router.include_router(signup.router, prefix="/signup", tags=["Signup"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and top-level endpoint groups."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/auth",
            "/auth/passkey",
            "/auth/tokens",
            "/organizations",
            "/invitations",
            "/signup",
        ],
    }
