"""
Session service: server-side browser sessions scoped to a current organization.

A session is valid while ``now < expires_at``. ``last_active_at`` slides
forward only once the refresh threshold has passed since the previous write.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

import structlog

from app.core.clock import Clock, SystemClock
from app.core.errors import (
    Err,
    ErrorType,
    Ok,
    Result,
    fail,
    not_a_member,
    storage_errors,
)
from app.models.user_session import UserSession
from app.services.memberships import MembershipService
from app.services.users import UserService
from app.stores.ports import SessionStore

log = structlog.get_logger()

DEFAULT_SESSION_TTL = timedelta(days=7)
DEFAULT_REFRESH_THRESHOLD = timedelta(days=1)


class SessionService:
    def __init__(
        self,
        sessions: SessionStore,
        users: UserService,
        memberships: MembershipService,
        *,
        clock: Optional[Clock] = None,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        refresh_threshold: timedelta = DEFAULT_REFRESH_THRESHOLD,
    ):
        self._sessions = sessions
        self._users = users
        self._memberships = memberships
        self._clock = clock or SystemClock()
        self.session_ttl = session_ttl
        self.refresh_threshold = refresh_threshold

    def _is_live(self, session: UserSession) -> bool:
        return self._clock.now() < session.expires_at

    @storage_errors
    async def create_session(
        self, user_id: uuid.UUID, organization_id: Optional[uuid.UUID] = None
    ) -> Result[UserSession]:
        user = await self._users.get_user(user_id)
        if isinstance(user, Err):
            return user

        listed = await self._memberships.list_memberships(user_id=user_id)
        if isinstance(listed, Err):
            return listed
        memberships = listed.value
        if not memberships:
            return fail(
                ErrorType.NO_MEMBERSHIPS,
                "User has no organization memberships",
                user_id=str(user_id),
            )

        if organization_id is not None:
            if not any(m.organization_id == organization_id for m in memberships):
                return not_a_member(user_id, organization_id)
            current = organization_id
        else:
            personal = next((m for m in memberships if m.is_personal_org), None)
            current = (personal or memberships[0]).organization_id

        now = self._clock.now()
        session = await self._sessions.add(
            UserSession(
                user_id=user_id,
                current_organization_id=current,
                created_at=now,
                expires_at=now + self.session_ttl,
                last_active_at=now,
            )
        )
        log.info("session.created", user_id=str(user_id), org_id=str(current))
        return Ok(session)

    @storage_errors
    async def validate_session(self, session_id: str) -> Result[Optional[UserSession]]:
        session = await self._sessions.get(session_id)
        if session is None or not self._is_live(session):
            return Ok(None)
        return Ok(session)

    @storage_errors
    async def refresh_session(self, session_id: str) -> Result[bool]:
        session = await self._sessions.get(session_id)
        if session is None or not self._is_live(session):
            return Ok(False)

        now = self._clock.now()
        if now - session.last_active_at < self.refresh_threshold:
            return Ok(False)

        await self._sessions.touch(session_id, now)
        log.debug("session.refreshed", user_id=str(session.user_id))
        return Ok(True)

    @storage_errors
    async def switch_organization(
        self, session_id: str, organization_id: uuid.UUID
    ) -> Result[UserSession]:
        session = await self._sessions.get(session_id)
        if session is None or not self._is_live(session):
            return fail(ErrorType.SESSION_NOT_FOUND, "Session not found")

        membership = await self._memberships.get_membership(session.user_id, organization_id)
        if isinstance(membership, Err):
            return membership
        if membership.value is None:
            return not_a_member(session.user_id, organization_id)

        await self._sessions.set_organization(session_id, organization_id)
        session.current_organization_id = organization_id
        log.info("session.org_switched", user_id=str(session.user_id), org_id=str(organization_id))
        return Ok(session)

    @storage_errors
    async def revoke_session(self, session_id: str) -> Result[None]:
        await self._sessions.delete(session_id)
        log.info("session.revoked")
        return Ok(None)

    @storage_errors
    async def revoke_all_user_sessions(self, user_id: uuid.UUID) -> Result[None]:
        await self._sessions.delete_for_user(user_id)
        log.info("session.revoked_all", user_id=str(user_id))
        return Ok(None)

    @storage_errors
    async def cleanup_expired_sessions(self) -> Result[int]:
        removed = await self._sessions.delete_expired(self._clock.now())
        log.info("session.cleanup", removed=removed)
        return Ok(removed)
