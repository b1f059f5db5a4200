"""
Authentication endpoints.

POST /api/auth/login/options        - WebAuthn assertion options + challenge
POST /api/auth/login/verify         - Verify the assertion, start a session
POST /api/auth/logout               - Revoke the current session cookie
GET  /api/auth/session              - Who am I (session or token)
POST /api/auth/sessions/revoke-all  - Log out everywhere
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response
from yoink_shared.schemas.auth import (
    CeremonyOptionsResponse,
    LoginOptionsRequest,
    LoginVerifyRequest,
    OrganizationRef,
    SessionResponse,
    UserInfo,
)
from yoink_shared.schemas.common import AuthMethod, OkResponse

from app.core.auth import USER_SESSION_COOKIE
from app.core.context import AuthContext
from app.core.deps import (
    Services,
    clear_session_cookie,
    get_auth_context,
    get_services,
    set_session_cookie,
)
from app.core.errors import ApiError, ErrorType, unwrap

log = structlog.get_logger()
router = APIRouter()


async def build_session_response(
    services: Services,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    method: AuthMethod,
    expires_at: Optional[datetime] = None,
) -> SessionResponse:
    user = unwrap(await services.users.get_user(user_id))
    organization = unwrap(await services.organizations.get_organization(organization_id))
    membership = unwrap(await services.memberships.get_membership(user_id, organization_id))
    if membership is None:
        raise ApiError(ErrorType.NOT_A_MEMBER, "User is not a member of this organization", 403)
    return SessionResponse(
        user=UserInfo(id=user.id, email=user.email),
        organization=OrganizationRef(id=organization.id, name=organization.name),
        role=membership.role,
        authenticated_via=method,
        expires_at=expires_at,
    )


# ---------------------------------------------------------------------------
# Passkey login
# ---------------------------------------------------------------------------

@router.post("/login/options", response_model=CeremonyOptionsResponse)
async def login_options(
    body: LoginOptionsRequest,
    services: Services = Depends(get_services),
):
    """Start a login ceremony, scoped to the user's passkeys when the email is known."""
    user_id = None
    if body.email:
        user = unwrap(await services.users.find_by_email(body.email))
        if user is not None:
            credentials = unwrap(await services.passkeys.list_credentials(user.id))
            user_id = user.id if credentials else None

    ceremony = unwrap(await services.passkeys.generate_authentication_options(user_id))
    return CeremonyOptionsResponse(options=ceremony.options, challenge=ceremony.challenge)


@router.post("/login/verify", response_model=SessionResponse)
async def login_verify(
    body: LoginVerifyRequest,
    response: Response,
    services: Services = Depends(get_services),
):
    """Verify the passkey assertion and set the session cookie."""
    passkey = unwrap(
        await services.passkeys.verify_authentication(body.challenge, body.credential)
    )
    session = unwrap(await services.sessions.create_session(passkey.user_id))
    set_session_cookie(response, services.settings, session.id)
    log.info("auth.login", user_id=str(passkey.user_id), method="passkey")
    return await build_session_response(
        services,
        session.user_id,
        session.current_organization_id,
        AuthMethod.SESSION,
        session.expires_at,
    )


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

@router.post("/logout", response_model=OkResponse)
async def logout(
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    """Revoke the session in the cookie (if any) and clear it. Always succeeds."""
    session_id = request.cookies.get(USER_SESSION_COOKIE)
    if session_id:
        unwrap(await services.sessions.revoke_session(session_id))
    clear_session_cookie(response, services.settings)
    return OkResponse()


@router.get("/session", response_model=SessionResponse)
async def current_session(
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """Describe the authenticated principal and its current organization."""
    return await build_session_response(
        services,
        auth.user_id,
        auth.organization_id,
        auth.method,
        auth.session.expires_at if auth.session else None,
    )


@router.post("/sessions/revoke-all", response_model=OkResponse)
async def revoke_all_sessions(
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """Log out every browser session of the caller."""
    unwrap(await services.sessions.revoke_all_user_sessions(auth.user_id))
    clear_session_cookie(response, services.settings)
    return OkResponse()
