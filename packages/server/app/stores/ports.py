"""
Store ports used by the auth services.

Every adapter raises ``StorageFailure`` when the backing store fails and
returns copies, so a caller mutating a returned model never changes state.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Protocol, Sequence

from app.models import (
    ApiToken,
    Invitation,
    Organization,
    OrganizationMembership,
    PasskeyCredential,
    User,
    UserSession,
)


class UserStore(Protocol):
    async def get(self, user_id: uuid.UUID) -> Optional[User]: ...
    async def get_by_email(self, email: str) -> Optional[User]: ...

    async def add(self, user: User) -> bool:
        """Insert; ``False`` when the email is already registered."""
        ...


class OrganizationStore(Protocol):
    async def get(self, organization_id: uuid.UUID) -> Optional[Organization]: ...
    async def get_many(self, organization_ids: Sequence[uuid.UUID]) -> list[Organization]: ...
    async def add(self, organization: Organization) -> Organization: ...


class MembershipStore(Protocol):
    async def get(self, membership_id: uuid.UUID) -> Optional[OrganizationMembership]: ...
    async def find(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[OrganizationMembership]: ...
    async def list_for_user(self, user_id: uuid.UUID) -> list[OrganizationMembership]: ...
    async def list_for_organization(
        self, organization_id: uuid.UUID
    ) -> list[OrganizationMembership]: ...
    async def count_admin_capable(self, organization_id: uuid.UUID) -> int: ...

    async def add(self, membership: OrganizationMembership) -> bool:
        """Insert; ``False`` when the (user, organization) pair already exists."""
        ...

    async def update_role(self, membership_id: uuid.UUID, role: str) -> None: ...
    async def delete(self, membership_id: uuid.UUID) -> None: ...


class TokenStore(Protocol):
    async def get(self, token_id: uuid.UUID) -> Optional[ApiToken]: ...
    async def list_for_user(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> list[ApiToken]: ...
    async def count_for_user(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> int: ...
    async def add(self, token: ApiToken) -> ApiToken: ...
    async def touch(self, token_id: uuid.UUID, used_at: datetime) -> None: ...
    async def delete(self, token_id: uuid.UUID) -> None: ...


class SessionStore(Protocol):
    async def get(self, session_id: str) -> Optional[UserSession]: ...
    async def add(self, session: UserSession) -> UserSession: ...
    async def touch(self, session_id: str, active_at: datetime) -> None: ...
    async def set_organization(self, session_id: str, organization_id: uuid.UUID) -> None: ...
    async def delete(self, session_id: str) -> None: ...
    async def delete_for_user(self, user_id: uuid.UUID) -> None: ...

    async def delete_expired(self, now: datetime) -> int:
        """Delete sessions with ``expires_at <= now``; return how many went."""
        ...


class CredentialStore(Protocol):
    async def get(self, credential_id: str) -> Optional[PasskeyCredential]: ...
    async def list_for_user(self, user_id: uuid.UUID) -> list[PasskeyCredential]: ...
    async def count_for_user(self, user_id: uuid.UUID) -> int: ...

    async def add(self, credential: PasskeyCredential) -> bool:
        """Insert; ``False`` when the credential id is already stored."""
        ...

    async def record_use(self, credential_id: str, counter: int, used_at: datetime) -> None: ...
    async def delete(self, credential_id: str) -> None: ...


class InvitationStore(Protocol):
    async def get(self, invitation_id: uuid.UUID) -> Optional[Invitation]: ...
    async def get_by_code(self, code: str) -> Optional[Invitation]: ...
    async def list_pending(self, organization_id: uuid.UUID, now: datetime) -> list[Invitation]: ...

    async def add(self, invitation: Invitation) -> bool:
        """Insert; ``False`` when the code is already taken."""
        ...

    async def mark_accepted(
        self, invitation_id: uuid.UUID, user_id: uuid.UUID, accepted_at: datetime
    ) -> bool:
        """Set the acceptance fields only if still unaccepted; ``True`` if this call won."""
        ...

    async def delete(self, invitation_id: uuid.UUID) -> None: ...
