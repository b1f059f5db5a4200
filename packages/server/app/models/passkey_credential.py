"""WebAuthn passkey credential."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, created_at_field


class PasskeyCredential(SQLModel, table=True):
    __tablename__ = "passkey_credentials"

    id: str = Field(primary_key=True)  # base64url credential id
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    public_key: str = Field(nullable=False)  # base64url COSE key
    counter: int = Field(default=0, nullable=False)
    transports: Optional[list[str]] = Field(default=None, sa_type=sa.JSON)
    device_type: str = Field(nullable=False, default="singleDevice")  # singleDevice | multiDevice
    backed_up: bool = Field(default=False, nullable=False)
    name: Optional[str] = None
    created_at: datetime = created_at_field()
    last_used_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
