"""API token schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import UUID4, BaseModel, ConfigDict, Field


class TokenCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class TokenInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    name: str
    organization_id: UUID4
    created_at: datetime
    last_used_at: Optional[datetime] = None


class TokenCreateResponse(BaseModel):
    """Returned once on creation; ``raw_token`` is never shown again."""
    token: TokenInfo
    raw_token: str


class TokenListResponse(BaseModel):
    tokens: list[TokenInfo]
