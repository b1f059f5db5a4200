"""Invitation schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import UUID4, BaseModel, ConfigDict, EmailStr, Field

from .common import InvitationRole


class InvitationCreateRequest(BaseModel):
    organization_id: Optional[UUID4] = None  # defaults to the caller's current organization
    role: InvitationRole = InvitationRole.MEMBER
    email: Optional[EmailStr] = None
    expires_in_days: int = Field(default=7, ge=1, le=30)


class InvitationInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    code: str
    email: Optional[str] = None
    organization_id: UUID4
    role: InvitationRole
    expires_at: datetime
    created_at: datetime


class InvitationListResponse(BaseModel):
    invitations: list[InvitationInfo]


class InvitationValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    email: Optional[EmailStr] = None


class InvitationValidateResponse(BaseModel):
    organization_id: UUID4
    organization_name: str
    role: InvitationRole
    expires_at: datetime


class InvitationAcceptRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)


class InvitationAcceptResponse(BaseModel):
    membership_id: UUID4
    organization_id: UUID4
    role: InvitationRole
