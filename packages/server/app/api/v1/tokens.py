"""
Personal API token endpoints.

GET    /api/auth/tokens              - List the caller's tokens in the current org
POST   /api/auth/tokens              - Create a token (raw value shown once)
DELETE /api/auth/tokens/{token_id}   - Revoke one of the caller's tokens
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from yoink_shared.schemas.common import OkResponse
from yoink_shared.schemas.tokens import (
    TokenCreateRequest,
    TokenCreateResponse,
    TokenInfo,
    TokenListResponse,
)

from app.core.context import AuthContext
from app.core.deps import Services, get_auth_context, get_services
from app.core.errors import unwrap

router = APIRouter()


@router.get("", response_model=TokenListResponse)
async def list_tokens(
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    tokens = unwrap(await services.tokens.list_tokens(auth.user_id, auth.organization_id))
    return TokenListResponse(tokens=[TokenInfo.model_validate(t) for t in tokens])


@router.post("", response_model=TokenCreateResponse, status_code=201)
async def create_token(
    body: TokenCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    issued = unwrap(
        await services.tokens.create_token(auth.user_id, auth.organization_id, body.name)
    )
    return TokenCreateResponse(token=TokenInfo.model_validate(issued.token), raw_token=issued.raw)


@router.delete("/{token_id}", response_model=OkResponse)
async def revoke_token(
    token_id: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    unwrap(await services.tokens.revoke_token(auth.user_id, token_id))
    return OkResponse()
