"""Single-use invitation code into an organization."""

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import UUIDMixin, UTCDateTime, created_at_field


class Invitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "invitations"

    code: str = Field(unique=True, index=True, nullable=False)
    email: Optional[str] = None
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    invited_by_user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    role: str = Field(nullable=False, default="member")  # admin | member
    expires_at: datetime = Field(nullable=False, sa_type=UTCDateTime)
    accepted_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    accepted_by_user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    created_at: datetime = created_at_field()
