"""Personal API token (bearer credential for API clients and the extension)."""

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import UUIDMixin, UTCDateTime, created_at_field


class ApiToken(UUIDMixin, SQLModel, table=True):
    __tablename__ = "api_tokens"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    token_hash: str = Field(nullable=False)  # bcrypt hash of the secret half only
    name: str = Field(nullable=False)
    created_at: datetime = created_at_field()
    last_used_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
