"""
SQLModel/SQLAlchemy async store adapters.

Each operation opens its own session and commits before returning.
``SQLAlchemyError`` is re-raised as ``StorageFailure`` tagged with the
store's error kind.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.core.errors import ErrorType, StorageFailure
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


class _SqlStore:
    kind: ErrorType
    entity: str

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageFailure(self.kind, f"Failed to access {self.entity} storage", exc) from exc

    async def _insert(self, row):
        async with self._session() as session:
            session.add(row)
            await session.commit()
            return row

    async def _insert_unique(self, row) -> bool:
        async with self._session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
            return True


class SqlUserStore(_SqlStore):
    kind = ErrorType.USER_STORAGE_ERROR
    entity = "user"

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        async with self._session() as session:
            return await session.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        async with self._session() as session:
            result = await session.execute(
                select(User).where(func.lower(User.email) == email.lower())
            )
            return result.scalar_one_or_none()

    async def add(self, user: User) -> bool:
        return await self._insert_unique(user)


class SqlOrganizationStore(_SqlStore):
    kind = ErrorType.ORGANIZATION_STORAGE_ERROR
    entity = "organization"

    async def get(self, organization_id: uuid.UUID) -> Optional[Organization]:
        async with self._session() as session:
            return await session.get(Organization, organization_id)

    async def get_many(self, organization_ids: Sequence[uuid.UUID]) -> list[Organization]:
        if not organization_ids:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(Organization).where(Organization.id.in_(list(organization_ids)))
            )
            return list(result.scalars().all())

    async def add(self, organization: Organization) -> Organization:
        return await self._insert(organization)


class SqlMembershipStore(_SqlStore):
    kind = ErrorType.MEMBERSHIP_STORAGE_ERROR
    entity = "membership"

    async def get(self, membership_id: uuid.UUID) -> Optional[OrganizationMembership]:
        async with self._session() as session:
            return await session.get(OrganizationMembership, membership_id)

    async def find(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[OrganizationMembership]:
        async with self._session() as session:
            result = await session.execute(
                select(OrganizationMembership).where(
                    OrganizationMembership.user_id == user_id,
                    OrganizationMembership.organization_id == organization_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_for_user(self, user_id: uuid.UUID) -> list[OrganizationMembership]:
        async with self._session() as session:
            result = await session.execute(
                select(OrganizationMembership)
                .where(OrganizationMembership.user_id == user_id)
                .order_by(OrganizationMembership.joined_at)
            )
            return list(result.scalars().all())

    async def list_for_organization(
        self, organization_id: uuid.UUID
    ) -> list[OrganizationMembership]:
        async with self._session() as session:
            result = await session.execute(
                select(OrganizationMembership)
                .where(OrganizationMembership.organization_id == organization_id)
                .order_by(OrganizationMembership.joined_at)
            )
            return list(result.scalars().all())

    async def count_admin_capable(self, organization_id: uuid.UUID) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(OrganizationMembership)
                .where(
                    OrganizationMembership.organization_id == organization_id,
                    OrganizationMembership.role.in_(ADMIN_CAPABLE),
                )
            )
            return result.scalar_one()

    async def add(self, membership: OrganizationMembership) -> bool:
        return await self._insert_unique(membership)

    async def update_role(self, membership_id: uuid.UUID, role: str) -> None:
        async with self._session() as session:
            await session.execute(
                update(OrganizationMembership)
                .where(OrganizationMembership.id == membership_id)
                .values(role=role)
            )
            await session.commit()

    async def delete(self, membership_id: uuid.UUID) -> None:
        async with self._session() as session:
            await session.execute(
                delete(OrganizationMembership).where(OrganizationMembership.id == membership_id)
            )
            await session.commit()


class SqlTokenStore(_SqlStore):
    kind = ErrorType.TOKEN_STORAGE_ERROR
    entity = "token"

    async def get(self, token_id: uuid.UUID) -> Optional[ApiToken]:
        async with self._session() as session:
            return await session.get(ApiToken, token_id)

    async def list_for_user(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> list[ApiToken]:
        async with self._session() as session:
            result = await session.execute(
                select(ApiToken)
                .where(ApiToken.user_id == user_id, ApiToken.organization_id == organization_id)
                .order_by(ApiToken.created_at)
            )
            return list(result.scalars().all())

    async def count_for_user(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(ApiToken)
                .where(ApiToken.user_id == user_id, ApiToken.organization_id == organization_id)
            )
            return result.scalar_one()

    async def add(self, token: ApiToken) -> ApiToken:
        return await self._insert(token)

    async def touch(self, token_id: uuid.UUID, used_at: datetime) -> None:
        async with self._session() as session:
            await session.execute(
                update(ApiToken).where(ApiToken.id == token_id).values(last_used_at=used_at)
            )
            await session.commit()

    async def delete(self, token_id: uuid.UUID) -> None:
        async with self._session() as session:
            await session.execute(delete(ApiToken).where(ApiToken.id == token_id))
            await session.commit()


class SqlSessionStore(_SqlStore):
    kind = ErrorType.SESSION_STORAGE_ERROR
    entity = "session"

    async def get(self, session_id: str) -> Optional[UserSession]:
        async with self._session() as session:
            return await session.get(UserSession, session_id)

    async def add(self, user_session: UserSession) -> UserSession:
        return await self._insert(user_session)

    async def touch(self, session_id: str, active_at: datetime) -> None:
        async with self._session() as session:
            await session.execute(
                update(UserSession)
                .where(UserSession.id == session_id)
                .values(last_active_at=active_at)
            )
            await session.commit()

    async def set_organization(self, session_id: str, organization_id: uuid.UUID) -> None:
        async with self._session() as session:
            await session.execute(
                update(UserSession)
                .where(UserSession.id == session_id)
                .values(current_organization_id=organization_id)
            )
            await session.commit()

    async def delete(self, session_id: str) -> None:
        async with self._session() as session:
            await session.execute(delete(UserSession).where(UserSession.id == session_id))
            await session.commit()

    async def delete_for_user(self, user_id: uuid.UUID) -> None:
        async with self._session() as session:
            await session.execute(delete(UserSession).where(UserSession.user_id == user_id))
            await session.commit()

    async def delete_expired(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(UserSession).where(UserSession.expires_at <= now)
            )
            await session.commit()
            return result.rowcount or 0


class SqlCredentialStore(_SqlStore):
    kind = ErrorType.CREDENTIAL_STORAGE_ERROR
    entity = "passkey credential"

    async def get(self, credential_id: str) -> Optional[PasskeyCredential]:
        async with self._session() as session:
            return await session.get(PasskeyCredential, credential_id)

    async def list_for_user(self, user_id: uuid.UUID) -> list[PasskeyCredential]:
        async with self._session() as session:
            result = await session.execute(
                select(PasskeyCredential)
                .where(PasskeyCredential.user_id == user_id)
                .order_by(PasskeyCredential.created_at)
            )
            return list(result.scalars().all())

    async def count_for_user(self, user_id: uuid.UUID) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(PasskeyCredential)
                .where(PasskeyCredential.user_id == user_id)
            )
            return result.scalar_one()

    async def add(self, credential: PasskeyCredential) -> bool:
        return await self._insert_unique(credential)

    async def record_use(self, credential_id: str, counter: int, used_at: datetime) -> None:
        async with self._session() as session:
            await session.execute(
                update(PasskeyCredential)
                .where(PasskeyCredential.id == credential_id)
                .values(counter=counter, last_used_at=used_at)
            )
            await session.commit()

    async def delete(self, credential_id: str) -> None:
        async with self._session() as session:
            await session.execute(
                delete(PasskeyCredential).where(PasskeyCredential.id == credential_id)
            )
            await session.commit()


class SqlInvitationStore(_SqlStore):
    kind = ErrorType.INVITATION_STORAGE_ERROR
    entity = "invitation"

    async def get(self, invitation_id: uuid.UUID) -> Optional[Invitation]:
        async with self._session() as session:
            return await session.get(Invitation, invitation_id)

    async def get_by_code(self, code: str) -> Optional[Invitation]:
        async with self._session() as session:
            result = await session.execute(select(Invitation).where(Invitation.code == code))
            return result.scalar_one_or_none()

    async def list_pending(self, organization_id: uuid.UUID, now: datetime) -> list[Invitation]:
        async with self._session() as session:
            result = await session.execute(
                select(Invitation)
                .where(
                    Invitation.organization_id == organization_id,
                    Invitation.accepted_at.is_(None),
                    Invitation.expires_at > now,
                )
                .order_by(Invitation.created_at)
            )
            return list(result.scalars().all())

    async def add(self, invitation: Invitation) -> bool:
        return await self._insert_unique(invitation)

    async def mark_accepted(
        self, invitation_id: uuid.UUID, user_id: uuid.UUID, accepted_at: datetime
    ) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(Invitation)
                .where(Invitation.id == invitation_id, Invitation.accepted_at.is_(None))
                .values(accepted_at=accepted_at, accepted_by_user_id=user_id)
            )
            await session.commit()
            return (result.rowcount or 0) == 1

    async def delete(self, invitation_id: uuid.UUID) -> None:
        async with self._session() as session:
            await session.execute(delete(Invitation).where(Invitation.id == invitation_id))
            await session.commit()
