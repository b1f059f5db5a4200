"""
Integration tests for the SQL store adapters against SQLite (aiosqlite).
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import text
from yoink_shared.schemas.common import MembershipRole

from app.core.database import create_engine, create_session_factory, init_db
from app.core.deps import build_services
from app.core.errors import ErrorType, Ok, StorageFailure
from app.models import (
    Invitation,
    Organization,
    OrganizationMembership,
    PasskeyCredential,
    User,
    UserSession,
)
from app.stores import sql_stores
from conftest import START


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'yoink.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql(engine):
    return sql_stores(create_session_factory(engine))


async def _user_and_org(sql, email="alice@example.com"):
    user = User(email=email, created_at=START)
    assert await sql.users.add(user)
    org = await sql.organizations.add(Organization(name="Acme", created_at=START))
    return user, org


class TestSqlStores:
    @pytest.mark.asyncio
    async def test_email_lookup_is_case_insensitive(self, sql):
        user, _ = await _user_and_org(sql)
        found = await sql.users.get_by_email("ALICE@example.com")
        assert found.id == user.id

    @pytest.mark.asyncio
    async def test_datetimes_come_back_as_utc(self, sql):
        user, _ = await _user_and_org(sql)
        loaded = await sql.users.get(user.id)
        assert loaded.created_at == START
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_membership_pair_is_unique(self, sql):
        user, org = await _user_and_org(sql)
        first = OrganizationMembership(user_id=user.id, organization_id=org.id, role="admin", joined_at=START)
        second = OrganizationMembership(user_id=user.id, organization_id=org.id, role="member", joined_at=START)

        assert await sql.memberships.add(first) is True
        assert await sql.memberships.add(second) is False
        assert len(await sql.memberships.list_for_organization(org.id)) == 1
        assert await sql.memberships.count_admin_capable(org.id) == 1

    @pytest.mark.asyncio
    async def test_email_is_unique(self, sql):
        await _user_and_org(sql)
        assert await sql.users.add(User(email="alice@example.com", created_at=START)) is False

    @pytest.mark.asyncio
    async def test_credential_id_is_unique(self, sql):
        alice, _ = await _user_and_org(sql)
        bob = User(email="bob@example.com", created_at=START)
        await sql.users.add(bob)

        mine = PasskeyCredential(id="cred-1", user_id=alice.id, public_key="pk-a", created_at=START)
        theirs = PasskeyCredential(id="cred-1", user_id=bob.id, public_key="pk-b", created_at=START)
        assert await sql.credentials.add(mine) is True
        assert await sql.credentials.add(theirs) is False

        stored = await sql.credentials.get("cred-1")
        assert stored.user_id == alice.id
        assert stored.public_key == "pk-a"

    @pytest.mark.asyncio
    async def test_expired_sessions_sweep_boundary(self, sql):
        user, org = await _user_and_org(sql)
        for sid, expires in [("past", START - timedelta(seconds=1)), ("now", START), ("future", START + timedelta(seconds=1))]:
            await sql.sessions.add(
                UserSession(
                    id=sid,
                    user_id=user.id,
                    current_organization_id=org.id,
                    created_at=START - timedelta(days=7),
                    expires_at=expires,
                    last_active_at=START - timedelta(days=7),
                )
            )

        assert await sql.sessions.delete_expired(START) == 2
        assert await sql.sessions.get("future") is not None
        assert await sql.sessions.get("now") is None

    @pytest.mark.asyncio
    async def test_invitation_accepted_once(self, sql):
        user, org = await _user_and_org(sql)
        invitation = Invitation(
            code="ABCDEFGH",
            organization_id=org.id,
            role="member",
            expires_at=START + timedelta(days=7),
            created_at=START,
        )
        assert await sql.invitations.add(invitation) is True
        duplicate = Invitation(
            code="ABCDEFGH",
            organization_id=org.id,
            role="member",
            expires_at=START + timedelta(days=7),
            created_at=START,
        )
        assert await sql.invitations.add(duplicate) is False

        assert await sql.invitations.mark_accepted(invitation.id, user.id, START) is True
        assert await sql.invitations.mark_accepted(invitation.id, user.id, START) is False
        assert await sql.invitations.list_pending(org.id, START) == []

    @pytest.mark.asyncio
    async def test_database_errors_become_storage_failures(self, sql, engine):
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE user_sessions"))

        with pytest.raises(StorageFailure) as exc_info:
            await sql.sessions.get("anything")
        assert exc_info.value.kind is ErrorType.SESSION_STORAGE_ERROR


class TestServicesOverSql:
    @pytest.mark.asyncio
    async def test_token_round_trip(self, sql, settings, clock, verifier):
        services = build_services(settings, sql, clock=clock, verifier=verifier)
        user = (await services.users.create_user("alice@example.com")).value
        org = (await services.organizations.create_organization("alice's Workspace")).value
        await services.memberships.add_member(user.id, org.id, MembershipRole.OWNER, is_personal_org=True)

        issued = (await services.tokens.create_token(user.id, org.id, "cli")).value
        clock.advance(minutes=1)
        result = await services.tokens.validate_token(issued.raw)
        assert isinstance(result, Ok)
        stored = await sql.tokens.get(issued.token.id)
        assert stored.last_used_at == clock.now()

    @pytest.mark.asyncio
    async def test_storage_failure_surfaces_as_err(self, sql, engine, settings, clock, verifier):
        services = build_services(settings, sql, clock=clock, verifier=verifier)
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE users"))

        result = await services.users.find_by_email("alice@example.com")
        assert result.type is ErrorType.USER_STORAGE_ERROR
