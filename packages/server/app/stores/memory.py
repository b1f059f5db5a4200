"""
In-memory store adapters.

Used by the test-suite and by ``YOINK_DATABASE_URL=memory``. Rows are kept
as plain dicts and rebuilt on every read.
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime
from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlmodel import SQLModel

from app.models import (
    ApiToken,
    Invitation,
    Organization,
    OrganizationMembership,
    PasskeyCredential,
    User,
    UserSession,
)

ADMIN_CAPABLE = ("owner", "admin")

M = TypeVar("M", bound=SQLModel)


class _Table(Generic[M]):
    model: type[M]

    def __init__(self) -> None:
        self.rows: dict[Any, dict[str, Any]] = {}

    def _load(self, data: dict[str, Any]) -> M:
        return self.model(**copy.deepcopy(data))

    def _put(self, row: M) -> M:
        self.rows[row.id] = row.model_dump()
        return self._load(self.rows[row.id])

    def _select(self, **match: Any) -> list[M]:
        return [
            self._load(data)
            for data in self.rows.values()
            if all(data.get(key) == value for key, value in match.items())
        ]

    async def get(self, row_id: Any) -> Optional[M]:
        data = self.rows.get(row_id)
        return self._load(data) if data is not None else None

    async def delete(self, row_id: Any) -> None:
        self.rows.pop(row_id, None)


class MemoryUserStore(_Table[User]):
    model = User

    async def get_by_email(self, email: str) -> Optional[User]:
        wanted = email.lower()
        for data in self.rows.values():
            if data["email"].lower() == wanted:
                return self._load(data)
        return None

    async def add(self, user: User) -> bool:
        if await self.get_by_email(user.email) is not None:
            return False
        self._put(user)
        return True


class MemoryOrganizationStore(_Table[Organization]):
    model = Organization

    async def get_many(self, organization_ids: Sequence[uuid.UUID]) -> list[Organization]:
        return [self._load(self.rows[oid]) for oid in organization_ids if oid in self.rows]

    async def add(self, organization: Organization) -> Organization:
        return self._put(organization)


class MemoryMembershipStore(_Table[OrganizationMembership]):
    model = OrganizationMembership

    async def find(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[OrganizationMembership]:
        found = self._select(user_id=user_id, organization_id=organization_id)
        return found[0] if found else None

    async def list_for_user(self, user_id: uuid.UUID) -> list[OrganizationMembership]:
        return sorted(self._select(user_id=user_id), key=lambda m: m.joined_at)

    async def list_for_organization(
        self, organization_id: uuid.UUID
    ) -> list[OrganizationMembership]:
        return sorted(self._select(organization_id=organization_id), key=lambda m: m.joined_at)

    async def count_admin_capable(self, organization_id: uuid.UUID) -> int:
        return sum(
            1
            for data in self.rows.values()
            if data["organization_id"] == organization_id and data["role"] in ADMIN_CAPABLE
        )

    async def add(self, membership: OrganizationMembership) -> bool:
        if await self.find(membership.user_id, membership.organization_id) is not None:
            return False
        self._put(membership)
        return True

    async def update_role(self, membership_id: uuid.UUID, role: str) -> None:
        if membership_id in self.rows:
            self.rows[membership_id]["role"] = role


class MemoryTokenStore(_Table[ApiToken]):
    model = ApiToken

    async def list_for_user(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> list[ApiToken]:
        tokens = self._select(user_id=user_id, organization_id=organization_id)
        return sorted(tokens, key=lambda t: t.created_at)

    async def count_for_user(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> int:
        return len(self._select(user_id=user_id, organization_id=organization_id))

    async def add(self, token: ApiToken) -> ApiToken:
        return self._put(token)

    async def touch(self, token_id: uuid.UUID, used_at: datetime) -> None:
        if token_id in self.rows:
            self.rows[token_id]["last_used_at"] = used_at


class MemorySessionStore(_Table[UserSession]):
    model = UserSession

    async def add(self, session: UserSession) -> UserSession:
        return self._put(session)

    async def touch(self, session_id: str, active_at: datetime) -> None:
        if session_id in self.rows:
            self.rows[session_id]["last_active_at"] = active_at

    async def set_organization(self, session_id: str, organization_id: uuid.UUID) -> None:
        if session_id in self.rows:
            self.rows[session_id]["current_organization_id"] = organization_id

    async def delete_for_user(self, user_id: uuid.UUID) -> None:
        for session_id in [sid for sid, data in self.rows.items() if data["user_id"] == user_id]:
            del self.rows[session_id]

    async def delete_expired(self, now: datetime) -> int:
        expired = [sid for sid, data in self.rows.items() if data["expires_at"] <= now]
        for session_id in expired:
            del self.rows[session_id]
        return len(expired)


class MemoryCredentialStore(_Table[PasskeyCredential]):
    model = PasskeyCredential

    async def list_for_user(self, user_id: uuid.UUID) -> list[PasskeyCredential]:
        return sorted(self._select(user_id=user_id), key=lambda c: c.created_at)

    async def count_for_user(self, user_id: uuid.UUID) -> int:
        return len(self._select(user_id=user_id))

    async def add(self, credential: PasskeyCredential) -> bool:
        if credential.id in self.rows:
            return False
        self._put(credential)
        return True

    async def record_use(self, credential_id: str, counter: int, used_at: datetime) -> None:
        if credential_id in self.rows:
            self.rows[credential_id].update(counter=counter, last_used_at=used_at)


class MemoryInvitationStore(_Table[Invitation]):
    model = Invitation

    async def get_by_code(self, code: str) -> Optional[Invitation]:
        found = self._select(code=code)
        return found[0] if found else None

    async def list_pending(self, organization_id: uuid.UUID, now: datetime) -> list[Invitation]:
        pending = [
            invitation
            for invitation in self._select(organization_id=organization_id)
            if invitation.accepted_at is None and invitation.expires_at > now
        ]
        return sorted(pending, key=lambda i: i.created_at)

    async def add(self, invitation: Invitation) -> bool:
        if await self.get_by_code(invitation.code) is not None:
            return False
        self._put(invitation)
        return True

    async def mark_accepted(
        self, invitation_id: uuid.UUID, user_id: uuid.UUID, accepted_at: datetime
    ) -> bool:
        data = self.rows.get(invitation_id)
        if data is None or data["accepted_at"] is not None:
            return False
        data.update(accepted_at=accepted_at, accepted_by_user_id=user_id)
        return True
