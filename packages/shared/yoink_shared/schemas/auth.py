"""Login, logout and current-session schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import UUID4, BaseModel, EmailStr

from .common import AuthMethod, MembershipRole


class CeremonyOptionsResponse(BaseModel):
    """WebAuthn options plus the signed challenge the client echoes back."""
    options: dict[str, Any]
    challenge: str


class LoginOptionsRequest(BaseModel):
    email: Optional[EmailStr] = None  # omitted -> discoverable credential login


class LoginVerifyRequest(BaseModel):
    challenge: str
    credential: dict[str, Any]


class UserInfo(BaseModel):
    id: UUID4
    email: str


class OrganizationRef(BaseModel):
    id: UUID4
    name: str


class SessionResponse(BaseModel):
    user: UserInfo
    organization: OrganizationRef
    role: MembershipRole
    authenticated_via: AuthMethod
    expires_at: Optional[datetime] = None
