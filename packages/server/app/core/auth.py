"""
Combined request authentication.

Resolves the credentials on a request into an ``AuthContext``:

1. ``user_session`` cookie present: it must be a live session, otherwise the
   request fails with INVALID_SESSION. The user must still be a member of
   the session's current organization. There is no fallback to the bearer
   token once a session cookie was sent.
2. ``Authorization: Bearer <id>:<secret>``: validated by the token service,
   failing with INVALID_TOKEN.
3. Neither: UNAUTHENTICATED.

A successful session login schedules a sliding refresh as a detached task.
Its outcome only reaches the log.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from yoink_shared.schemas.common import AuthMethod

from app.core.context import AuthContext
from app.core.errors import Err, ErrorType, Ok, Result, fail
from app.services.memberships import MembershipService
from app.services.sessions import SessionService
from app.services.tokens import TokenService

log = structlog.get_logger()

USER_SESSION_COOKIE = "user_session"

_refresh_tasks: set[asyncio.Task] = set()


def _report_refresh(task: asyncio.Task) -> None:
    _refresh_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("session.refresh_crashed", error=repr(exc))
        return
    outcome = task.result()
    if isinstance(outcome, Err):
        log.warning("session.refresh_failed", kind=outcome.type.value)


def schedule_refresh(sessions: SessionService, session_id: str) -> asyncio.Task:
    task = asyncio.create_task(sessions.refresh_session(session_id))
    _refresh_tasks.add(task)
    task.add_done_callback(_report_refresh)
    return task


async def drain_refresh_tasks() -> None:
    """Wait for in-flight refreshes (shutdown and tests)."""
    if _refresh_tasks:
        await asyncio.gather(*list(_refresh_tasks), return_exceptions=True)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


class CombinedAuthenticator:
    def __init__(
        self,
        sessions: SessionService,
        tokens: TokenService,
        memberships: MembershipService,
    ):
        self._sessions = sessions
        self._tokens = tokens
        self._memberships = memberships

    async def authenticate(
        self, session_id: Optional[str], authorization: Optional[str]
    ) -> Result[AuthContext]:
        if session_id:
            return await self._from_session(session_id)

        token = bearer_token(authorization)
        if token is not None:
            return await self._from_token(token)

        return fail(ErrorType.UNAUTHENTICATED, "Not authenticated")

    async def _from_session(self, session_id: str) -> Result[AuthContext]:
        validated = await self._sessions.validate_session(session_id)
        if isinstance(validated, Err) or validated.value is None:
            if isinstance(validated, Err):
                log.warning("auth.session_lookup_failed", kind=validated.type.value)
            return fail(ErrorType.INVALID_SESSION, "Invalid or expired session")

        session = validated.value

        # Membership in the current organization may have been removed since login.
        membership = await self._memberships.get_membership(
            session.user_id, session.current_organization_id
        )
        if isinstance(membership, Err) or membership.value is None:
            if isinstance(membership, Err):
                log.warning("auth.membership_lookup_failed", kind=membership.type.value)
            else:
                log.info(
                    "auth.session_membership_gone",
                    user_id=str(session.user_id),
                    org_id=str(session.current_organization_id),
                )
            return fail(ErrorType.INVALID_SESSION, "Invalid or expired session")

        schedule_refresh(self._sessions, session.id)
        structlog.contextvars.bind_contextvars(
            user_id=str(session.user_id), org_id=str(session.current_organization_id)
        )
        return Ok(
            AuthContext(
                user_id=session.user_id,
                organization_id=session.current_organization_id,
                method=AuthMethod.SESSION,
                session=session,
            )
        )

    async def _from_token(self, token: str) -> Result[AuthContext]:
        validated = await self._tokens.validate_token(token)
        if isinstance(validated, Err):
            log.info("auth.token_rejected", kind=validated.type.value)
            return fail(ErrorType.INVALID_TOKEN, "Invalid token")

        context = validated.value
        structlog.contextvars.bind_contextvars(
            user_id=str(context.user_id), org_id=str(context.organization_id)
        )
        return Ok(context)
