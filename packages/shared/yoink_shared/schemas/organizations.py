"""Organization membership schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import UUID4, BaseModel

from .common import MembershipRole


class OrganizationSummary(BaseModel):
    id: UUID4
    name: str
    role: MembershipRole
    is_personal_org: bool
    is_current: bool


class OrganizationListResponse(BaseModel):
    organizations: list[OrganizationSummary]
    current_organization_id: UUID4


class SwitchOrganizationRequest(BaseModel):
    organization_id: UUID4


class MemberInfo(BaseModel):
    membership_id: UUID4
    user_id: UUID4
    email: str
    role: MembershipRole
    is_personal_org: bool
    joined_at: datetime


class MemberListResponse(BaseModel):
    members: list[MemberInfo]


class RoleChangeRequest(BaseModel):
    role: MembershipRole
