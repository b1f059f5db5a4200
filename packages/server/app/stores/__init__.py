"""Store ports and their SQL / in-memory adapters."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .memory import (
    MemoryCredentialStore,
    MemoryInvitationStore,
    MemoryMembershipStore,
    MemoryOrganizationStore,
    MemorySessionStore,
    MemoryTokenStore,
    MemoryUserStore,
)
from .ports import (
    CredentialStore,
    InvitationStore,
    MembershipStore,
    OrganizationStore,
    SessionStore,
    TokenStore,
    UserStore,
)
from .sql import (
    SqlCredentialStore,
    SqlInvitationStore,
    SqlMembershipStore,
    SqlOrganizationStore,
    SqlSessionStore,
    SqlTokenStore,
    SqlUserStore,
)


@dataclass
class Stores:
    users: UserStore
    organizations: OrganizationStore
    memberships: MembershipStore
    tokens: TokenStore
    sessions: SessionStore
    credentials: CredentialStore
    invitations: InvitationStore


def memory_stores() -> Stores:
    return Stores(
        users=MemoryUserStore(),
        organizations=MemoryOrganizationStore(),
        memberships=MemoryMembershipStore(),
        tokens=MemoryTokenStore(),
        sessions=MemorySessionStore(),
        credentials=MemoryCredentialStore(),
        invitations=MemoryInvitationStore(),
    )


def sql_stores(session_factory: async_sessionmaker[AsyncSession]) -> Stores:
    return Stores(
        users=SqlUserStore(session_factory),
        organizations=SqlOrganizationStore(session_factory),
        memberships=SqlMembershipStore(session_factory),
        tokens=SqlTokenStore(session_factory),
        sessions=SqlSessionStore(session_factory),
        credentials=SqlCredentialStore(session_factory),
        invitations=SqlInvitationStore(session_factory),
    )
