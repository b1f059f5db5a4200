"""Server-side browser session."""

from datetime import datetime
import secrets
import uuid

from sqlmodel import Field, SQLModel

from .base import UTCDateTime, _utcnow, created_at_field


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"

    id: str = Field(default_factory=new_session_id, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    current_organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False)
    created_at: datetime = created_at_field()
    expires_at: datetime = Field(nullable=False, index=True, sa_type=UTCDateTime)
    last_active_at: datetime = Field(default_factory=_utcnow, nullable=False, sa_type=UTCDateTime)
