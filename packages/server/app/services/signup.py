"""
Signup service: invitation-only account creation.

A new user gets a personal organization (owner, flagged personal) and the
membership the invitation grants.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from yoink_shared.schemas.common import MembershipRole

from app.core.errors import Err, ErrorType, Ok, Result, fail
from app.models.invitation import Invitation
from app.models.membership import OrganizationMembership
from app.models.organization import Organization
from app.models.user import User
from app.services.invitations import InvitationService
from app.services.memberships import MembershipService
from app.services.organizations import OrganizationService, personal_organization_name
from app.services.users import UserService

log = structlog.get_logger()


@dataclass(frozen=True)
class SignupCheck:
    invitation: Invitation
    organization: Organization


@dataclass(frozen=True)
class SignupResult:
    user: User
    personal_organization: Organization
    invited_organization: Organization
    invited_membership: OrganizationMembership


class SignupService:
    def __init__(
        self,
        invitations: InvitationService,
        users: UserService,
        organizations: OrganizationService,
        memberships: MembershipService,
    ):
        self._invitations = invitations
        self._users = users
        self._organizations = organizations
        self._memberships = memberships

    async def validate_signup(self, code: str, email: str) -> Result[SignupCheck]:
        invitation = await self._invitations.validate_invitation(code, email)
        if isinstance(invitation, Err):
            return invitation

        existing = await self._users.find_by_email(email)
        if isinstance(existing, Err):
            return existing
        if existing.value is not None:
            return fail(ErrorType.EMAIL_ALREADY_REGISTERED, "Email is already registered")

        organization = await self._organizations.get_organization(
            invitation.value.organization_id
        )
        if isinstance(organization, Err):
            return organization
        return Ok(SignupCheck(invitation=invitation.value, organization=organization.value))

    async def complete_signup(self, code: str, email: str) -> Result[SignupResult]:
        check = await self.validate_signup(code, email)
        if isinstance(check, Err):
            return check

        user = await self._users.create_user(email)
        if isinstance(user, Err):
            return user
        user_id = user.value.id

        personal = await self._organizations.create_organization(
            personal_organization_name(user.value.email)
        )
        if isinstance(personal, Err):
            return personal

        owner = await self._memberships.add_member(
            user_id, personal.value.id, MembershipRole.OWNER, is_personal_org=True
        )
        if isinstance(owner, Err):
            return owner

        joined = await self._invitations.accept_and_join(code, user_id, email)
        if isinstance(joined, Err):
            return joined

        log.info(
            "signup.completed",
            user_id=str(user_id),
            personal_org_id=str(personal.value.id),
            invited_org_id=str(check.value.organization.id),
        )
        return Ok(
            SignupResult(
                user=user.value,
                personal_organization=personal.value,
                invited_organization=check.value.organization,
                invited_membership=joined.value,
            )
        )
