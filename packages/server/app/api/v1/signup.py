"""
Invitation-only signup.

A new user redeems an invitation code and registers their first passkey in
one ceremony. On success they own a personal workspace, hold the invited
membership, and receive a session cookie for the personal workspace.

POST /api/signup/validate  - Code + email check, no side effects
POST /api/signup/options   - Same check, plus WebAuthn registration options
POST /api/signup/verify    - Verify the attestation and create everything
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response
from yoink_shared.schemas.auth import OrganizationRef, UserInfo
from yoink_shared.schemas.signup import (
    InvitedOrganizationRef,
    SignupOptionsResponse,
    SignupValidateRequest,
    SignupValidateResponse,
    SignupVerifyRequest,
    SignupVerifyResponse,
)

from app.core.deps import Services, get_services, set_session_cookie
from app.core.errors import unwrap

log = structlog.get_logger()
router = APIRouter()


@router.post("/validate", response_model=SignupValidateResponse)
async def validate_signup(
    body: SignupValidateRequest,
    services: Services = Depends(get_services),
):
    check = unwrap(await services.signup.validate_signup(body.code, body.email))
    return SignupValidateResponse(
        organization_id=check.organization.id,
        organization_name=check.organization.name,
        role=check.invitation.role,
    )


@router.post("/options", response_model=SignupOptionsResponse)
async def signup_options(
    body: SignupValidateRequest,
    services: Services = Depends(get_services),
):
    check = unwrap(await services.signup.validate_signup(body.code, body.email))
    ceremony = unwrap(
        await services.passkeys.generate_signup_registration_options(body.email, body.email)
    )
    return SignupOptionsResponse(
        organization_id=check.organization.id,
        organization_name=check.organization.name,
        role=check.invitation.role,
        options=ceremony.options,
        challenge=ceremony.challenge,
    )


@router.post("/verify", response_model=SignupVerifyResponse, status_code=201)
async def signup_verify(
    body: SignupVerifyRequest,
    response: Response,
    services: Services = Depends(get_services),
):
    # Attestation first: nothing is written unless the passkey checks out.
    unwrap(await services.signup.validate_signup(body.code, body.email))
    registration = unwrap(
        await services.passkeys.verify_signup_registration(
            body.email, body.challenge, body.credential
        )
    )

    result = unwrap(await services.signup.complete_signup(body.code, body.email))
    unwrap(
        await services.passkeys.save_registration(
            result.user.id, registration, body.credential_name
        )
    )

    session = unwrap(
        await services.sessions.create_session(result.user.id, result.personal_organization.id)
    )
    set_session_cookie(response, services.settings, session.id)

    log.info("signup.session_started", user_id=str(result.user.id))
    return SignupVerifyResponse(
        user=UserInfo(id=result.user.id, email=result.user.email),
        personal_organization=OrganizationRef(
            id=result.personal_organization.id, name=result.personal_organization.name
        ),
        invited_organization=InvitedOrganizationRef(
            id=result.invited_organization.id,
            name=result.invited_organization.name,
            role=result.invited_membership.role,
        ),
    )
