"""
Operator console.

Guarded by a single shared password. The console session is a signed,
stateless token in the ``admin_session`` cookie.

POST /admin/login          - Exchange the password for a console session
POST /admin/logout         - Clear the console cookie
GET  /admin/session        - Is the console session valid
POST /admin/organizations  - Create an organization
POST /admin/invitations    - Invite someone into any organization
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from yoink_shared.schemas.admin import (
    AdminInvitationCreateRequest,
    AdminLoginRequest,
    AdminOrganizationCreateRequest,
    AdminOrganizationResponse,
    AdminSessionResponse,
)
from yoink_shared.schemas.common import OkResponse
from yoink_shared.schemas.invitations import InvitationInfo

from app.core.deps import (
    ADMIN_SESSION_COOKIE,
    Services,
    clear_admin_cookie,
    get_services,
    require_admin_session,
    set_admin_cookie,
)
from app.core.errors import ApiError, ErrorType, unwrap
from app.services.admin_sessions import AdminSession

router = APIRouter()


@router.post("/login", response_model=AdminSessionResponse)
async def admin_login(
    body: AdminLoginRequest,
    response: Response,
    services: Services = Depends(get_services),
):
    if services.admin is None:
        raise ApiError(ErrorType.UNAUTHENTICATED, "Admin console is disabled", 401)
    token = unwrap(services.admin.login(body.password))
    set_admin_cookie(response, services.settings, token)
    session = services.admin.verify_session(token)
    return AdminSessionResponse(authenticated=True, created_at=session.created_at)


@router.post("/logout", response_model=OkResponse)
async def admin_logout(response: Response, services: Services = Depends(get_services)):
    clear_admin_cookie(response, services.settings)
    return OkResponse()


@router.get("/session", response_model=AdminSessionResponse)
async def admin_session(request: Request, services: Services = Depends(get_services)):
    token = request.cookies.get(ADMIN_SESSION_COOKIE)
    if services.admin is None or not token:
        return AdminSessionResponse(authenticated=False)
    session = services.admin.verify_session(token)
    if session is None:
        return AdminSessionResponse(authenticated=False)
    return AdminSessionResponse(authenticated=True, created_at=session.created_at)


@router.post("/organizations", response_model=AdminOrganizationResponse, status_code=201)
async def admin_create_organization(
    body: AdminOrganizationCreateRequest,
    _: AdminSession = Depends(require_admin_session),
    services: Services = Depends(get_services),
):
    organization = unwrap(await services.organizations.create_organization(body.name))
    return AdminOrganizationResponse(
        id=organization.id, name=organization.name, created_at=organization.created_at
    )


@router.post("/invitations", response_model=InvitationInfo, status_code=201)
async def admin_create_invitation(
    body: AdminInvitationCreateRequest,
    _: AdminSession = Depends(require_admin_session),
    services: Services = Depends(get_services),
):
    invitation = unwrap(
        await services.invitations.create_invitation(
            body.organization_id,
            None,
            role=body.role,
            email=body.email,
            expires_in_days=body.expires_in_days,
            skip_permission_check=True,
        )
    )
    return InvitationInfo.model_validate(invitation)
