"""
Passkey management endpoints (authenticated).

POST   /api/auth/passkey/register/options
POST   /api/auth/passkey/register/verify
GET    /api/auth/passkey/credentials
DELETE /api/auth/passkey/credentials/{credential_id}
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response
from yoink_shared.schemas.auth import CeremonyOptionsResponse, SessionResponse
from yoink_shared.schemas.common import AuthMethod, OkResponse
from yoink_shared.schemas.passkeys import (
    CredentialInfo,
    CredentialListResponse,
    RegisterVerifyRequest,
)

from app.api.v1.auth import build_session_response
from app.core.context import AuthContext
from app.core.deps import Services, get_auth_context, get_services, set_session_cookie
from app.core.errors import unwrap

log = structlog.get_logger()
router = APIRouter()


@router.post("/register/options", response_model=CeremonyOptionsResponse)
async def register_options(
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    ceremony = unwrap(await services.passkeys.generate_registration_options(auth.user_id))
    return CeremonyOptionsResponse(options=ceremony.options, challenge=ceremony.challenge)


@router.post("/register/verify", response_model=SessionResponse, status_code=201)
async def register_verify(
    body: RegisterVerifyRequest,
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """Store the new passkey and start a fresh session in the current organization."""
    unwrap(
        await services.passkeys.verify_registration(
            auth.user_id, body.challenge, body.credential, body.credential_name
        )
    )
    session = unwrap(
        await services.sessions.create_session(auth.user_id, auth.organization_id)
    )
    set_session_cookie(response, services.settings, session.id)
    return await build_session_response(
        services,
        session.user_id,
        session.current_organization_id,
        AuthMethod.SESSION,
        session.expires_at,
    )


@router.get("/credentials", response_model=CredentialListResponse)
async def list_credentials(
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    credentials = unwrap(await services.passkeys.list_credentials(auth.user_id))
    return CredentialListResponse(
        credentials=[CredentialInfo.model_validate(c) for c in credentials]
    )


@router.delete("/credentials/{credential_id}", response_model=OkResponse)
async def delete_credential(
    credential_id: str,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    unwrap(await services.passkeys.delete_credential_for_user(credential_id, auth.user_id))
    return OkResponse()
