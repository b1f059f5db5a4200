"""Passkey registration and credential management schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import DeviceType


class RegisterVerifyRequest(BaseModel):
    challenge: str
    credential: dict[str, Any]
    credential_name: Optional[str] = Field(default=None, max_length=100)


class CredentialInfo(BaseModel):
    """Client-facing projection; never carries the public key or counter."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    device_type: DeviceType
    backed_up: bool
    transports: Optional[list[str]] = None
    created_at: datetime
    last_used_at: Optional[datetime] = None


class CredentialListResponse(BaseModel):
    credentials: list[CredentialInfo]
