"""
Invitation service: time-bounded, single-use join codes.

Accepting an invitation and creating the membership are two separate writes.
``accept_and_join`` runs both and logs ``invitation.accepted_without_membership``
when the second one fails after the first has committed.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Callable, Optional, Union

import structlog
from yoink_shared.schemas.common import InvitationRole, MembershipRole

from app.core.clock import Clock, SystemClock
from app.core.errors import (
    Err,
    ErrorType,
    Ok,
    Result,
    fail,
    insufficient_permissions,
    organization_not_found,
    storage_errors,
)
from app.core.hashing import generate_invitation_code
from app.models.invitation import Invitation
from app.models.membership import OrganizationMembership
from app.services.memberships import MembershipService
from app.stores.ports import InvitationStore, OrganizationStore

log = structlog.get_logger()

DEFAULT_EXPIRY_DAYS = 7
CODE_ATTEMPTS = 5


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _invitation_not_found(code: str):
    return fail(ErrorType.INVITATION_NOT_FOUND, "Invitation not found", code=code)


def _already_accepted(invitation: Invitation):
    return fail(
        ErrorType.INVITATION_ALREADY_ACCEPTED,
        "Invitation has already been used",
        code=invitation.code,
    )


class InvitationService:
    def __init__(
        self,
        invitations: InvitationStore,
        organizations: OrganizationStore,
        memberships: MembershipService,
        *,
        clock: Optional[Clock] = None,
        code_generator: Callable[[], str] = generate_invitation_code,
    ):
        self._invitations = invitations
        self._organizations = organizations
        self._memberships = memberships
        self._clock = clock or SystemClock()
        self._generate_code = code_generator

    @storage_errors
    async def create_invitation(
        self,
        organization_id: uuid.UUID,
        invited_by_user_id: Optional[uuid.UUID],
        role: Union[InvitationRole, str] = InvitationRole.MEMBER,
        email: Optional[str] = None,
        expires_in_days: int = DEFAULT_EXPIRY_DAYS,
        skip_permission_check: bool = False,
    ) -> Result[Invitation]:
        """Create an invitation.

        The caller must be admin-capable in the organization unless
        ``skip_permission_check`` is set, which only the operator console does.
        """
        if await self._organizations.get(organization_id) is None:
            return organization_not_found(organization_id)

        if not skip_permission_check:
            if invited_by_user_id is None:
                return insufficient_permissions(MembershipRole.ADMIN.value)
            allowed = await self._memberships.has_role(
                invited_by_user_id, organization_id, MembershipRole.ADMIN
            )
            if isinstance(allowed, Err):
                return allowed
            if not allowed.value:
                return insufficient_permissions(MembershipRole.ADMIN.value)

        now = self._clock.now()
        for _ in range(CODE_ATTEMPTS):
            invitation = Invitation(
                code=self._generate_code(),
                email=email.strip().lower() if email else None,
                organization_id=organization_id,
                invited_by_user_id=invited_by_user_id,
                role=InvitationRole(role).value,
                expires_at=now + timedelta(days=expires_in_days),
                created_at=now,
            )
            if await self._invitations.add(invitation):
                log.info(
                    "invitation.created",
                    invitation_id=str(invitation.id),
                    org_id=str(organization_id),
                    role=invitation.role,
                )
                return Ok(invitation)
            log.warning("invitation.code_collision", org_id=str(organization_id))

        return fail(
            ErrorType.INVITATION_STORAGE_ERROR,
            "Could not allocate a unique invitation code",
        )

    @storage_errors
    async def validate_invitation(
        self, code: str, email: Optional[str] = None
    ) -> Result[Invitation]:
        code = normalize_code(code)
        invitation = await self._invitations.get_by_code(code)
        if invitation is None:
            return _invitation_not_found(code)
        if invitation.accepted_at is not None:
            return _already_accepted(invitation)
        if invitation.expires_at <= self._clock.now():
            return fail(ErrorType.INVITATION_EXPIRED, "Invitation has expired", code=code)
        if invitation.email and (email is None or invitation.email.lower() != email.strip().lower()):
            return fail(
                ErrorType.INVITATION_EMAIL_MISMATCH,
                "Email does not match invitation",
                code=code,
            )
        return Ok(invitation)

    @storage_errors
    async def accept_invitation(
        self, code: str, user_id: uuid.UUID, email: Optional[str] = None
    ) -> Result[Invitation]:
        validated = await self.validate_invitation(code, email)
        if isinstance(validated, Err):
            return validated
        invitation = validated.value

        now = self._clock.now()
        if not await self._invitations.mark_accepted(invitation.id, user_id, now):
            return _already_accepted(invitation)

        invitation.accepted_at = now
        invitation.accepted_by_user_id = user_id
        log.info(
            "invitation.accepted",
            invitation_id=str(invitation.id),
            user_id=str(user_id),
            org_id=str(invitation.organization_id),
        )
        return Ok(invitation)

    async def accept_and_join(
        self, code: str, user_id: uuid.UUID, email: Optional[str] = None
    ) -> Result[OrganizationMembership]:
        """Redeem ``code`` for ``user_id`` and add the invited membership."""
        validated = await self.validate_invitation(code, email)
        if isinstance(validated, Err):
            return validated

        existing = await self._memberships.get_membership(user_id, validated.value.organization_id)
        if isinstance(existing, Err):
            return existing
        if existing.value is not None:
            return fail(
                ErrorType.ALREADY_MEMBER,
                "You are already a member of this organization",
                organization_id=str(validated.value.organization_id),
            )

        accepted = await self.accept_invitation(code, user_id, email)
        if isinstance(accepted, Err):
            return accepted
        invitation = accepted.value

        membership = await self._memberships.add_member(
            user_id, invitation.organization_id, invitation.role
        )
        if isinstance(membership, Err):
            log.error(
                "invitation.accepted_without_membership",
                invitation_id=str(invitation.id),
                user_id=str(user_id),
                org_id=str(invitation.organization_id),
                error=membership.type.value,
            )
        return membership

    @storage_errors
    async def list_pending_invitations(
        self, organization_id: uuid.UUID
    ) -> Result[list[Invitation]]:
        return Ok(await self._invitations.list_pending(organization_id, self._clock.now()))

    @storage_errors
    async def revoke_invitation(
        self, invitation_id: uuid.UUID, user_id: uuid.UUID
    ) -> Result[None]:
        invitation = await self._invitations.get(invitation_id)
        if invitation is None:
            return fail(
                ErrorType.INVITATION_NOT_FOUND,
                "Invitation not found",
                invitation_id=str(invitation_id),
            )

        allowed = await self._memberships.has_role(
            user_id, invitation.organization_id, MembershipRole.ADMIN
        )
        if isinstance(allowed, Err):
            return allowed
        if not allowed.value:
            return insufficient_permissions(MembershipRole.ADMIN.value)

        await self._invitations.delete(invitation_id)
        log.info("invitation.revoked", invitation_id=str(invitation_id), user_id=str(user_id))
        return Ok(None)
