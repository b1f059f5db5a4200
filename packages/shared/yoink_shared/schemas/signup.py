"""Invitation-only signup schemas."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import UUID4, BaseModel, EmailStr, Field

from .auth import OrganizationRef, UserInfo
from .common import InvitationRole


class SignupValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    email: EmailStr


class SignupValidateResponse(BaseModel):
    organization_id: UUID4
    organization_name: str
    role: InvitationRole


class SignupOptionsResponse(SignupValidateResponse):
    options: dict[str, Any]
    challenge: str


class SignupVerifyRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    email: EmailStr
    challenge: str
    credential: dict[str, Any]
    credential_name: Optional[str] = Field(default=None, max_length=100)


class InvitedOrganizationRef(OrganizationRef):
    role: InvitationRole


class SignupVerifyResponse(BaseModel):
    user: UserInfo
    personal_organization: OrganizationRef
    invited_organization: InvitedOrganizationRef
