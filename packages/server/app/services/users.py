"""
User service: lookup and creation of tenant users.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from app.core.clock import Clock, SystemClock
from app.core.errors import ErrorType, Ok, Result, fail, storage_errors, user_not_found
from app.models.user import User
from app.stores.ports import UserStore

log = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    def __init__(self, users: UserStore, *, clock: Optional[Clock] = None):
        self._users = users
        self._clock = clock or SystemClock()

    @storage_errors
    async def get_user(self, user_id: uuid.UUID) -> Result[User]:
        user = await self._users.get(user_id)
        if user is None:
            return user_not_found(user_id)
        return Ok(user)

    @storage_errors
    async def find_by_email(self, email: str) -> Result[Optional[User]]:
        return Ok(await self._users.get_by_email(normalize_email(email)))

    @storage_errors
    async def create_user(self, email: str) -> Result[User]:
        user = User(email=normalize_email(email), created_at=self._clock.now())
        if not await self._users.add(user):
            return fail(
                ErrorType.EMAIL_ALREADY_REGISTERED,
                "Email is already registered",
                email=user.email,
            )
        log.info("user.created", user_id=str(user.id))
        return Ok(user)
