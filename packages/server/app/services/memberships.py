"""
Membership service: the User <-> Organization relation and its role rules.

Invariants:
- a personal-organization membership is never removed;
- every organization keeps at least one admin-capable (owner/admin) member;
- the owner role is only granted with the personal organization and never
  changes afterwards.

Removal and role changes read the admin count and then write, so both run
under a per-organization lock.
"""

from __future__ import annotations

import uuid
from typing import Optional, Union

import structlog
from yoink_shared.schemas.common import MembershipRole

from app.core.clock import Clock, SystemClock
from app.core.errors import (
    ErrorType,
    Ok,
    Result,
    fail,
    membership_not_found,
    organization_not_found,
    storage_errors,
    user_not_found,
)
from app.core.locks import LocalOrganizationLocks, OrganizationLocks
from app.models.membership import OrganizationMembership
from app.stores.ports import MembershipStore, OrganizationStore, UserStore

log = structlog.get_logger()

ROLE_RANK: dict[MembershipRole, int] = {
    MembershipRole.OWNER: 3,
    MembershipRole.ADMIN: 2,
    MembershipRole.MEMBER: 1,
}

ADMIN_CAPABLE = frozenset({MembershipRole.OWNER, MembershipRole.ADMIN})

RoleLike = Union[MembershipRole, str]


def role_at_least(actual: RoleLike, required: RoleLike) -> bool:
    return ROLE_RANK[MembershipRole(actual)] >= ROLE_RANK[MembershipRole(required)]


def is_admin_capable(role: RoleLike) -> bool:
    return MembershipRole(role) in ADMIN_CAPABLE


def _last_admin(organization_id: uuid.UUID):
    return fail(
        ErrorType.LAST_ADMIN,
        "An organization must keep at least one owner or admin",
        organization_id=str(organization_id),
    )


class MembershipService:
    def __init__(
        self,
        memberships: MembershipStore,
        users: UserStore,
        organizations: OrganizationStore,
        *,
        locks: Optional[OrganizationLocks] = None,
        clock: Optional[Clock] = None,
    ):
        self._memberships = memberships
        self._users = users
        self._organizations = organizations
        self._locks = locks or LocalOrganizationLocks()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @storage_errors
    async def get_membership(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Result[Optional[OrganizationMembership]]:
        return Ok(await self._memberships.find(user_id, organization_id))

    @storage_errors
    async def get_membership_by_id(
        self, membership_id: uuid.UUID
    ) -> Result[Optional[OrganizationMembership]]:
        return Ok(await self._memberships.get(membership_id))

    @storage_errors
    async def list_memberships(
        self,
        user_id: Optional[uuid.UUID] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Result[list[OrganizationMembership]]:
        """List by user or by organization; with neither selector the list is empty."""
        if user_id is not None:
            memberships = await self._memberships.list_for_user(user_id)
            if organization_id is not None:
                memberships = [m for m in memberships if m.organization_id == organization_id]
            return Ok(memberships)
        if organization_id is not None:
            return Ok(await self._memberships.list_for_organization(organization_id))
        return Ok([])

    @storage_errors
    async def has_role(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, required: RoleLike
    ) -> Result[bool]:
        membership = await self._memberships.find(user_id, organization_id)
        if membership is None:
            return Ok(False)
        return Ok(role_at_least(membership.role, required))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @storage_errors
    async def add_member(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        role: RoleLike,
        is_personal_org: bool = False,
    ) -> Result[OrganizationMembership]:
        if await self._users.get(user_id) is None:
            return user_not_found(user_id)
        if await self._organizations.get(organization_id) is None:
            return organization_not_found(organization_id)

        membership = OrganizationMembership(
            user_id=user_id,
            organization_id=organization_id,
            role=MembershipRole(role).value,
            is_personal_org=is_personal_org,
            joined_at=self._clock.now(),
        )
        if not await self._memberships.add(membership):
            return fail(
                ErrorType.ALREADY_MEMBER,
                "User is already a member of this organization",
                user_id=str(user_id),
                organization_id=str(organization_id),
            )

        log.info(
            "membership.added",
            user_id=str(user_id),
            org_id=str(organization_id),
            role=membership.role,
            personal=is_personal_org,
        )
        return Ok(membership)

    @storage_errors
    async def remove_member(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Result[None]:
        async with self._locks.hold(organization_id):
            membership = await self._memberships.find(user_id, organization_id)
            if membership is None:
                return membership_not_found(user_id=user_id, organization_id=organization_id)
            if membership.is_personal_org:
                return fail(
                    ErrorType.CANNOT_LEAVE_PERSONAL_ORG,
                    "You cannot leave your personal organization",
                    organization_id=str(organization_id),
                )
            if is_admin_capable(membership.role):
                if await self._memberships.count_admin_capable(organization_id) <= 1:
                    return _last_admin(organization_id)

            await self._memberships.delete(membership.id)

        log.info("membership.removed", user_id=str(user_id), org_id=str(organization_id))
        return Ok(None)

    @storage_errors
    async def change_role(
        self, membership_id: uuid.UUID, new_role: RoleLike
    ) -> Result[OrganizationMembership]:
        new_role = MembershipRole(new_role)
        existing = await self._memberships.get(membership_id)
        if existing is None:
            return membership_not_found(membership_id=membership_id)

        async with self._locks.hold(existing.organization_id):
            membership = await self._memberships.get(membership_id)
            if membership is None:
                return membership_not_found(membership_id=membership_id)

            current = MembershipRole(membership.role)
            if current is MembershipRole.OWNER or new_role is MembershipRole.OWNER:
                return fail(
                    ErrorType.CANNOT_CHANGE_OWNER_ROLE,
                    "The owner role cannot be granted or changed",
                    membership_id=str(membership_id),
                )
            if current is new_role:
                return Ok(membership)

            if is_admin_capable(current) and not is_admin_capable(new_role):
                if await self._memberships.count_admin_capable(membership.organization_id) <= 1:
                    return _last_admin(membership.organization_id)

            await self._memberships.update_role(membership_id, new_role.value)

        membership.role = new_role.value
        log.info(
            "membership.role_changed",
            membership_id=str(membership_id),
            org_id=str(membership.organization_id),
            from_role=current.value,
            to_role=new_role.value,
        )
        return Ok(membership)
