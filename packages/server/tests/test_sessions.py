"""
Tests for SessionService.

Covers:
- Creation: personal org default, explicit org, non-member, no memberships
- Validation at the expiry boundary
- Sliding refresh threshold
- Organization switching
- Revocation and the expiry sweep
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from app.core.errors import ErrorType, Ok


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_defaults_to_personal_org(self, services, make_user, make_team, clock):
        user, personal = await make_user()
        await make_team(user)

        session = (await services.sessions.create_session(user.id)).value
        assert session.current_organization_id == personal.id
        assert session.expires_at == clock.now() + timedelta(days=7)
        assert len(session.id) >= 32

    @pytest.mark.asyncio
    async def test_explicit_org(self, services, make_user, make_team):
        user, _ = await make_user()
        team, _ = await make_team(user)
        session = (await services.sessions.create_session(user.id, team.id)).value
        assert session.current_organization_id == team.id

    @pytest.mark.asyncio
    async def test_explicit_org_requires_membership(self, services, make_user):
        user, _ = await make_user()
        result = await services.sessions.create_session(user.id, uuid.uuid4())
        assert result.type is ErrorType.NOT_A_MEMBER

    @pytest.mark.asyncio
    async def test_no_memberships(self, services):
        user = (await services.users.create_user("lonely@example.com")).value
        result = await services.sessions.create_session(user.id)
        assert result.type is ErrorType.NO_MEMBERSHIPS

    @pytest.mark.asyncio
    async def test_unknown_user(self, services):
        result = await services.sessions.create_session(uuid.uuid4())
        assert result.type is ErrorType.USER_NOT_FOUND


class TestValidateSession:
    @pytest.mark.asyncio
    async def test_live_until_expiry(self, services, make_user, clock):
        user, _ = await make_user()
        session = (await services.sessions.create_session(user.id)).value

        clock.advance(days=7, seconds=-1)
        assert (await services.sessions.validate_session(session.id)).value is not None

        clock.advance(seconds=1)
        assert (await services.sessions.validate_session(session.id)).value is None

    @pytest.mark.asyncio
    async def test_unknown_session(self, services):
        result = await services.sessions.validate_session("nope")
        assert isinstance(result, Ok)
        assert result.value is None


class TestRefreshSession:
    @pytest.mark.asyncio
    async def test_no_write_before_threshold(self, services, stores, make_user, clock):
        user, _ = await make_user()
        session = (await services.sessions.create_session(user.id)).value

        clock.advance(hours=23)
        assert (await services.sessions.refresh_session(session.id)).value is False
        assert stores.sessions.rows[session.id]["last_active_at"] == session.last_active_at

    @pytest.mark.asyncio
    async def test_write_after_threshold(self, services, stores, make_user, clock):
        user, _ = await make_user()
        session = (await services.sessions.create_session(user.id)).value

        clock.advance(days=1)
        assert (await services.sessions.refresh_session(session.id)).value is True
        assert stores.sessions.rows[session.id]["last_active_at"] == clock.now()
        # expiry is not extended
        assert stores.sessions.rows[session.id]["expires_at"] == session.expires_at

    @pytest.mark.asyncio
    async def test_expired_session_is_not_refreshed(self, services, make_user, clock):
        user, _ = await make_user()
        session = (await services.sessions.create_session(user.id)).value
        clock.advance(days=8)
        assert (await services.sessions.refresh_session(session.id)).value is False


class TestSwitchOrganization:
    @pytest.mark.asyncio
    async def test_switch(self, services, make_user, make_team):
        user, _ = await make_user()
        team, _ = await make_team(user)
        session = (await services.sessions.create_session(user.id)).value

        switched = (await services.sessions.switch_organization(session.id, team.id)).value
        assert switched.current_organization_id == team.id
        stored = (await services.sessions.validate_session(session.id)).value
        assert stored.current_organization_id == team.id

    @pytest.mark.asyncio
    async def test_switch_to_foreign_org(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        _, bobs_org = await make_user("bob@example.com")
        session = (await services.sessions.create_session(alice.id)).value

        result = await services.sessions.switch_organization(session.id, bobs_org.id)
        assert result.type is ErrorType.NOT_A_MEMBER

    @pytest.mark.asyncio
    async def test_switch_expired_session(self, services, make_user, clock):
        user, personal = await make_user()
        session = (await services.sessions.create_session(user.id)).value
        clock.advance(days=8)
        result = await services.sessions.switch_organization(session.id, personal.id)
        assert result.type is ErrorType.SESSION_NOT_FOUND


class TestRevocation:
    @pytest.mark.asyncio
    async def test_revoke_one(self, services, make_user):
        user, _ = await make_user()
        session = (await services.sessions.create_session(user.id)).value
        await services.sessions.revoke_session(session.id)
        assert (await services.sessions.validate_session(session.id)).value is None

    @pytest.mark.asyncio
    async def test_revoke_missing_is_ok(self, services):
        assert isinstance(await services.sessions.revoke_session("missing"), Ok)

    @pytest.mark.asyncio
    async def test_revoke_all_for_user(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        bob, _ = await make_user("bob@example.com")
        a1 = (await services.sessions.create_session(alice.id)).value
        a2 = (await services.sessions.create_session(alice.id)).value
        b1 = (await services.sessions.create_session(bob.id)).value

        await services.sessions.revoke_all_user_sessions(alice.id)
        assert (await services.sessions.validate_session(a1.id)).value is None
        assert (await services.sessions.validate_session(a2.id)).value is None
        assert (await services.sessions.validate_session(b1.id)).value is not None

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired(self, services, stores, make_user, clock):
        user, _ = await make_user()
        old = (await services.sessions.create_session(user.id)).value
        clock.advance(days=3)
        fresh = (await services.sessions.create_session(user.id)).value

        clock.advance(days=4)  # old expires exactly now
        removed = (await services.sessions.cleanup_expired_sessions()).value
        assert removed == 1
        assert old.id not in stores.sessions.rows
        assert fresh.id in stores.sessions.rows
