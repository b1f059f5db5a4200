"""
Invitation endpoints.

POST   /api/invitations                                   - Create an invitation (admin)
POST   /api/invitations/validate                          - Check a code before signup or accept
POST   /api/invitations/accept                            - Join an organization with a code
DELETE /api/invitations/{invitation_id}                   - Revoke a pending invitation (admin)
GET    /api/organizations/{organization_id}/invitations   - Pending invitations (admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from yoink_shared.schemas.common import OkResponse
from yoink_shared.schemas.invitations import (
    InvitationAcceptRequest,
    InvitationAcceptResponse,
    InvitationCreateRequest,
    InvitationInfo,
    InvitationListResponse,
    InvitationValidateRequest,
    InvitationValidateResponse,
)

from app.core.context import AuthContext
from app.core.deps import Services, get_auth_context, get_services, require_admin_role
from app.core.errors import unwrap

router = APIRouter()


@router.post("/invitations", response_model=InvitationInfo, status_code=201)
async def create_invitation(
    body: InvitationCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    invitation = unwrap(
        await services.invitations.create_invitation(
            body.organization_id or auth.organization_id,
            auth.user_id,
            role=body.role,
            email=body.email,
            expires_in_days=body.expires_in_days,
        )
    )
    return InvitationInfo.model_validate(invitation)


@router.post("/invitations/validate", response_model=InvitationValidateResponse)
async def validate_invitation(
    body: InvitationValidateRequest,
    services: Services = Depends(get_services),
):
    """Public: lets the signup page show which organization a code leads to."""
    invitation = unwrap(await services.invitations.validate_invitation(body.code, body.email))
    organization = unwrap(
        await services.organizations.get_organization(invitation.organization_id)
    )
    return InvitationValidateResponse(
        organization_id=organization.id,
        organization_name=organization.name,
        role=invitation.role,
        expires_at=invitation.expires_at,
    )


@router.post("/invitations/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    body: InvitationAcceptRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    user = unwrap(await services.users.get_user(auth.user_id))
    membership = unwrap(
        await services.invitations.accept_and_join(body.code, auth.user_id, user.email)
    )
    return InvitationAcceptResponse(
        membership_id=membership.id,
        organization_id=membership.organization_id,
        role=membership.role,
    )


@router.delete("/invitations/{invitation_id}", response_model=OkResponse)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    unwrap(await services.invitations.revoke_invitation(invitation_id, auth.user_id))
    return OkResponse()


@router.get(
    "/organizations/{organization_id}/invitations", response_model=InvitationListResponse
)
async def list_invitations(
    organization_id: uuid.UUID,
    auth: AuthContext = Depends(require_admin_role),
    services: Services = Depends(get_services),
):
    invitations = unwrap(await services.invitations.list_pending_invitations(organization_id))
    return InvitationListResponse(
        invitations=[InvitationInfo.model_validate(i) for i in invitations]
    )
