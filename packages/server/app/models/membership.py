"""User-Organization membership with role."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, UTCDateTime, _utcnow


class OrganizationMembership(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organization_memberships"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "organization_id", name="uq_membership_user_org"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member
    is_personal_org: bool = Field(default=False, nullable=False)
    joined_at: datetime = Field(default_factory=_utcnow, nullable=False, sa_type=UTCDateTime)
