"""Operator console schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import UUID4, BaseModel, EmailStr, Field

from .common import InvitationRole


class AdminLoginRequest(BaseModel):
    password: str = Field(min_length=1)


class AdminSessionResponse(BaseModel):
    authenticated: bool
    created_at: Optional[datetime] = None


class AdminOrganizationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class AdminOrganizationResponse(BaseModel):
    id: UUID4
    name: str
    created_at: datetime


class AdminInvitationCreateRequest(BaseModel):
    organization_id: UUID4
    role: InvitationRole = InvitationRole.MEMBER
    email: Optional[EmailStr] = None
    expires_in_days: int = Field(default=7, ge=1, le=30)
