"""The resolved principal handed to every protected route."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from yoink_shared.schemas.common import AuthMethod

from app.models.user_session import UserSession


@dataclass(frozen=True)
class AuthContext:
    user_id: uuid.UUID
    organization_id: uuid.UUID
    method: AuthMethod
    session: Optional[UserSession] = None
