"""
Organization membership endpoints.

GET    /api/organizations                                        - Caller's organizations
POST   /api/organizations/switch                                 - Change the session's current org
POST   /api/organizations/{organization_id}/leave                - Leave an organization
GET    /api/organizations/{organization_id}/members              - List members
PATCH  /api/organizations/{organization_id}/members/{membership_id} - Change a member's role (admin)
DELETE /api/organizations/{organization_id}/members/{user_id}    - Remove a member (admin)
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from yoink_shared.schemas.auth import SessionResponse
from yoink_shared.schemas.common import AuthMethod, OkResponse
from yoink_shared.schemas.organizations import (
    MemberInfo,
    MemberListResponse,
    OrganizationListResponse,
    OrganizationSummary,
    RoleChangeRequest,
    SwitchOrganizationRequest,
)

from app.api.v1.auth import build_session_response
from app.core.context import AuthContext
from app.core.deps import (
    Services,
    get_auth_context,
    get_services,
    require_admin_role,
    require_member_of,
    require_session,
)
from app.core.errors import membership_not_found, raise_for_error, unwrap
from app.models.membership import OrganizationMembership

log = structlog.get_logger()
router = APIRouter()


async def _member_info(services: Services, membership: OrganizationMembership) -> MemberInfo:
    user = unwrap(await services.users.get_user(membership.user_id))
    return MemberInfo(
        membership_id=membership.id,
        user_id=membership.user_id,
        email=user.email,
        role=membership.role,
        is_personal_org=membership.is_personal_org,
        joined_at=membership.joined_at,
    )


@router.get("", response_model=OrganizationListResponse)
async def list_organizations(
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    memberships = unwrap(await services.memberships.list_memberships(user_id=auth.user_id))
    organizations = unwrap(
        await services.organizations.get_organizations([m.organization_id for m in memberships])
    )
    names = {org.id: org.name for org in organizations}
    return OrganizationListResponse(
        organizations=[
            OrganizationSummary(
                id=m.organization_id,
                name=names.get(m.organization_id, ""),
                role=m.role,
                is_personal_org=m.is_personal_org,
                is_current=m.organization_id == auth.organization_id,
            )
            for m in memberships
        ],
        current_organization_id=auth.organization_id,
    )


@router.post("/switch", response_model=SessionResponse)
async def switch_organization(
    body: SwitchOrganizationRequest,
    auth: AuthContext = Depends(require_session),
    services: Services = Depends(get_services),
):
    session = unwrap(
        await services.sessions.switch_organization(auth.session.id, body.organization_id)
    )
    return await build_session_response(
        services,
        session.user_id,
        session.current_organization_id,
        AuthMethod.SESSION,
        session.expires_at,
    )


@router.post("/{organization_id}/leave", response_model=OkResponse)
async def leave_organization(
    organization_id: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    unwrap(await services.memberships.remove_member(auth.user_id, organization_id))

    # A session parked in the organization just left moves back to the personal one.
    if auth.session is not None and auth.organization_id == organization_id:
        memberships = unwrap(await services.memberships.list_memberships(user_id=auth.user_id))
        personal = next((m for m in memberships if m.is_personal_org), None)
        if personal is not None:
            unwrap(
                await services.sessions.switch_organization(
                    auth.session.id, personal.organization_id
                )
            )
    return OkResponse()


@router.get("/{organization_id}/members", response_model=MemberListResponse)
async def list_members(
    organization_id: uuid.UUID,
    auth: AuthContext = Depends(require_member_of),
    services: Services = Depends(get_services),
):
    memberships = unwrap(
        await services.memberships.list_memberships(organization_id=organization_id)
    )
    return MemberListResponse(members=[await _member_info(services, m) for m in memberships])


@router.patch("/{organization_id}/members/{membership_id}", response_model=MemberInfo)
async def change_member_role(
    organization_id: uuid.UUID,
    membership_id: uuid.UUID,
    body: RoleChangeRequest,
    auth: AuthContext = Depends(require_admin_role),
    services: Services = Depends(get_services),
):
    existing = unwrap(await services.memberships.get_membership_by_id(membership_id))
    if existing is None or existing.organization_id != organization_id:
        raise_for_error(membership_not_found(membership_id=membership_id))

    membership = unwrap(await services.memberships.change_role(membership_id, body.role))
    return await _member_info(services, membership)


@router.delete("/{organization_id}/members/{user_id}", response_model=OkResponse)
async def remove_member(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: AuthContext = Depends(require_admin_role),
    services: Services = Depends(get_services),
):
    unwrap(await services.memberships.remove_member(user_id, organization_id))
    log.info("org.member_removed", org_id=str(organization_id), removed_by=str(auth.user_id))
    return OkResponse()
