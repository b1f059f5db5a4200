"""
Tests for MembershipService.

Covers:
- Adding members and the unique (user, organization) pair
- Leaving / removing: personal-org and last-admin guards
- Role changes: owner role is fixed, demoting the last admin is refused
- Per-organization locking around removals
"""

from __future__ import annotations

import asyncio
import gc
import uuid
from contextlib import asynccontextmanager

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError
from yoink_shared.schemas.common import MembershipRole

from app.core.errors import Err, ErrorType, Ok, StorageFailure
from app.core.locks import LocalOrganizationLocks, RedisOrganizationLocks
from app.services.memberships import MembershipService, is_admin_capable, role_at_least


class TestRoleHelpers:
    @pytest.mark.parametrize(
        "actual, required, expected",
        [
            ("owner", "owner", True),
            ("owner", "admin", True),
            ("owner", "member", True),
            ("admin", "owner", False),
            ("admin", "admin", True),
            ("admin", "member", True),
            ("member", "owner", False),
            ("member", "admin", False),
            ("member", "member", True),
        ],
    )
    def test_rank_ordering(self, actual, required, expected):
        assert role_at_least(actual, required) is expected
        assert role_at_least(MembershipRole(actual), MembershipRole(required)) is expected

    def test_admin_capable(self):
        assert is_admin_capable("owner")
        assert is_admin_capable("admin")
        assert not is_admin_capable("member")


class TestAddMember:
    @pytest.mark.asyncio
    async def test_add_member(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        bob, _ = await make_user("bob@example.com")
        team, _ = await make_team(admin)

        result = await services.memberships.add_member(bob.id, team.id, "member")
        assert isinstance(result, Ok)
        assert result.value.role == "member"
        assert result.value.is_personal_org is False

    @pytest.mark.asyncio
    async def test_duplicate_membership_rejected(self, services, make_user):
        user, personal = await make_user()
        result = await services.memberships.add_member(user.id, personal.id, "member")
        assert isinstance(result, Err)
        assert result.type is ErrorType.ALREADY_MEMBER

    @pytest.mark.asyncio
    async def test_unknown_user_or_org(self, services, make_user):
        user, personal = await make_user()

        result = await services.memberships.add_member(uuid.uuid4(), personal.id, "member")
        assert result.type is ErrorType.USER_NOT_FOUND

        result = await services.memberships.add_member(user.id, uuid.uuid4(), "member")
        assert result.type is ErrorType.ORGANIZATION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_has_role(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        bob, _ = await make_user("bob@example.com")
        team, _ = await make_team(admin)
        await services.memberships.add_member(bob.id, team.id, "member")

        assert (await services.memberships.has_role(admin.id, team.id, "admin")).value is True
        assert (await services.memberships.has_role(bob.id, team.id, "admin")).value is False
        assert (await services.memberships.has_role(bob.id, team.id, "member")).value is True
        assert (await services.memberships.has_role(uuid.uuid4(), team.id, "member")).value is False

    @pytest.mark.asyncio
    async def test_list_without_selector_is_empty(self, services, make_user):
        await make_user()
        result = await services.memberships.list_memberships()
        assert result.value == []


class TestRemoveMember:
    @pytest.mark.asyncio
    async def test_member_can_leave(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        bob, _ = await make_user("bob@example.com")
        team, _ = await make_team(admin)
        await services.memberships.add_member(bob.id, team.id, "member")

        result = await services.memberships.remove_member(bob.id, team.id)
        assert isinstance(result, Ok)
        assert (await services.memberships.get_membership(bob.id, team.id)).value is None

    @pytest.mark.asyncio
    async def test_cannot_leave_personal_org(self, services, make_user):
        user, personal = await make_user()
        result = await services.memberships.remove_member(user.id, personal.id)
        assert result.type is ErrorType.CANNOT_LEAVE_PERSONAL_ORG

    @pytest.mark.asyncio
    async def test_last_admin_cannot_leave(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        team, _ = await make_team(admin)
        result = await services.memberships.remove_member(admin.id, team.id)
        assert result.type is ErrorType.LAST_ADMIN

    @pytest.mark.asyncio
    async def test_admin_can_leave_when_another_admin_remains(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        other, _ = await make_user("other@example.com")
        team, _ = await make_team(admin)
        await services.memberships.add_member(other.id, team.id, "admin")

        assert isinstance(await services.memberships.remove_member(admin.id, team.id), Ok)

    @pytest.mark.asyncio
    async def test_not_a_member(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        team, _ = await make_team(admin)
        result = await services.memberships.remove_member(uuid.uuid4(), team.id)
        assert result.type is ErrorType.MEMBERSHIP_NOT_FOUND

    @pytest.mark.asyncio
    async def test_concurrent_admin_removals_keep_one_admin(self, services, make_user, make_team):
        a, _ = await make_user("a@example.com")
        b, _ = await make_user("b@example.com")
        team, _ = await make_team(a)
        await services.memberships.add_member(b.id, team.id, "admin")

        results = await asyncio.gather(
            services.memberships.remove_member(a.id, team.id),
            services.memberships.remove_member(b.id, team.id),
        )
        assert sorted(isinstance(r, Ok) for r in results) == [False, True]
        assert [r.type for r in results if isinstance(r, Err)] == [ErrorType.LAST_ADMIN]
        remaining = await services.memberships.list_memberships(organization_id=team.id)
        assert len(remaining.value) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_becomes_error(self, services, stores, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        team, _ = await make_team(admin)

        async def broken(*args, **kwargs):
            raise StorageFailure(ErrorType.MEMBERSHIP_STORAGE_ERROR, "db down")

        stores.memberships.find = broken
        result = await services.memberships.remove_member(admin.id, team.id)
        assert result.type is ErrorType.MEMBERSHIP_STORAGE_ERROR


class TestChangeRole:
    @pytest.mark.asyncio
    async def test_promote_member(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        bob, _ = await make_user("bob@example.com")
        team, _ = await make_team(admin)
        member = (await services.memberships.add_member(bob.id, team.id, "member")).value

        result = await services.memberships.change_role(member.id, "admin")
        assert result.value.role == "admin"
        assert (await services.memberships.get_membership_by_id(member.id)).value.role == "admin"

    @pytest.mark.asyncio
    async def test_owner_role_is_fixed(self, services, make_user, make_team):
        user, personal = await make_user()
        owner = (await services.memberships.get_membership(user.id, personal.id)).value
        result = await services.memberships.change_role(owner.id, "admin")
        assert result.type is ErrorType.CANNOT_CHANGE_OWNER_ROLE

        admin, _ = await make_user("admin@example.com")
        _, admin_membership = await make_team(admin)
        result = await services.memberships.change_role(admin_membership.id, "owner")
        assert result.type is ErrorType.CANNOT_CHANGE_OWNER_ROLE

    @pytest.mark.asyncio
    async def test_cannot_demote_last_admin(self, services, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        _, membership = await make_team(admin)
        result = await services.memberships.change_role(membership.id, "member")
        assert result.type is ErrorType.LAST_ADMIN

    @pytest.mark.asyncio
    async def test_same_role_is_a_no_op(self, services, stores, make_user, make_team):
        admin, _ = await make_user("admin@example.com")
        _, membership = await make_team(admin)

        async def unexpected(*args, **kwargs):
            raise AssertionError("no write expected")

        stores.memberships.update_role = unexpected
        result = await services.memberships.change_role(membership.id, "admin")
        assert isinstance(result, Ok)

    @pytest.mark.asyncio
    async def test_unknown_membership(self, services):
        result = await services.memberships.change_role(uuid.uuid4(), "admin")
        assert result.type is ErrorType.MEMBERSHIP_NOT_FOUND


# ---------------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------------

class FakeLock:
    def __init__(self, events, acquire_result=True, error=None):
        self.events = events
        self.acquire_result = acquire_result
        self.error = error

    async def acquire(self):
        if self.error is not None:
            raise self.error
        self.events.append("acquire")
        return self.acquire_result

    async def release(self):
        self.events.append("release")


class FakeRedis:
    def __init__(self, **lock_kwargs):
        self.calls = []
        self.events = []
        self.lock_kwargs = lock_kwargs

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.calls.append((name, timeout, blocking_timeout))
        return FakeLock(self.events, **self.lock_kwargs)


class TestOrganizationLocks:
    @pytest.mark.asyncio
    async def test_local_lock_serialises_same_org(self):
        locks = LocalOrganizationLocks()
        org = uuid.uuid4()
        order = []

        async def worker(name):
            async with locks.hold(org):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_local_locks_are_dropped_when_idle(self):
        locks = LocalOrganizationLocks()
        for _ in range(3):
            async with locks.hold(uuid.uuid4()):
                pass

        gc.collect()
        assert len(locks._locks) == 0

    @pytest.mark.asyncio
    async def test_redis_lock_uses_org_key(self):
        client = FakeRedis()
        locks = RedisOrganizationLocks(client, timeout=3, blocking_timeout=1)
        org = uuid.uuid4()
        async with locks.hold(org):
            client.events.append("body")

        assert client.calls == [(f"org:{org}:membership", 3, 1)]
        assert client.events == ["acquire", "body", "release"]

    @pytest.mark.asyncio
    async def test_redis_lock_timeout(self):
        locks = RedisOrganizationLocks(FakeRedis(acquire_result=False))
        with pytest.raises(StorageFailure) as exc_info:
            async with locks.hold(uuid.uuid4()):
                pass
        assert exc_info.value.kind is ErrorType.MEMBERSHIP_STORAGE_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [LockError("lock lost"), RedisConnectionError("redis down")]
    )
    async def test_redis_errors_become_membership_storage_errors(
        self, stores, make_user, make_team, error
    ):
        admin, _ = await make_user("admin@example.com")
        bob, _ = await make_user("bob@example.com")
        team, _ = await make_team(admin)
        memberships = MembershipService(
            stores.memberships,
            stores.users,
            stores.organizations,
            locks=RedisOrganizationLocks(FakeRedis(error=error)),
        )
        await memberships.add_member(bob.id, team.id, "member")

        result = await memberships.remove_member(bob.id, team.id)
        assert isinstance(result, Err)
        assert result.type is ErrorType.MEMBERSHIP_STORAGE_ERROR
        assert (await memberships.get_membership(bob.id, team.id)).value is not None

    @pytest.mark.asyncio
    async def test_service_takes_lock_for_removal(self, stores, make_user, make_team, services):
        held = []

        class RecordingLocks:
            @asynccontextmanager
            async def hold(self, organization_id):
                held.append(organization_id)
                yield

        admin, _ = await make_user("admin@example.com")
        team, _ = await make_team(admin)
        memberships = MembershipService(
            stores.memberships, stores.users, stores.organizations, locks=RecordingLocks()
        )
        await memberships.remove_member(admin.id, team.id)
        assert held == [team.id]
