"""
Shared fixtures: a controllable clock, in-memory stores, a scripted WebAuthn
verifier and an HTTP client bound to a fresh app.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from yoink_shared.schemas.common import DeviceType, MembershipRole

from app.core.auth import drain_refresh_tasks
from app.core.config import Settings
from app.core.deps import build_services
from app.core.errors import unwrap
from app.main import create_app
from app.services.organizations import personal_organization_name
from app.services.webauthn import (
    CredentialDescriptor,
    VerificationError,
    VerifiedAuthentication,
    VerifiedRegistration,
)
from app.stores import memory_stores

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

ADMIN_PASSWORD = "operator-password"


class FakeClock:
    def __init__(self, now: datetime = START):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> None:
        self._now += timedelta(**kwargs)


class FakeWebAuthnVerifier:
    """Accepts any response that echoes the expected challenge.

    Responses look like ``{"id": ..., "challenge": ..., "signCount": ...}``;
    see ``attestation`` and ``assertion`` below.
    """

    def registration_options(
        self,
        *,
        user_handle: bytes,
        user_name: str,
        challenge: bytes,
        exclude: Sequence[CredentialDescriptor],
    ) -> dict[str, Any]:
        return {
            "challenge": challenge.decode(),
            "user": {"name": user_name},
            "excludeCredentials": [c.id for c in exclude],
        }

    def authentication_options(
        self, *, challenge: bytes, allow: Sequence[CredentialDescriptor]
    ) -> dict[str, Any]:
        return {"challenge": challenge.decode(), "allowCredentials": [c.id for c in allow]}

    def verify_registration(
        self, *, response: dict[str, Any], expected_challenge: bytes
    ) -> VerifiedRegistration:
        if response.get("challenge") != expected_challenge.decode():
            raise VerificationError("challenge mismatch")
        return VerifiedRegistration(
            credential_id=response["id"],
            public_key=f"pk-{response['id']}",
            sign_count=response.get("signCount", 0),
            device_type=DeviceType.MULTI_DEVICE,
            backed_up=True,
            transports=["internal"],
        )

    def verify_authentication(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: bytes,
        public_key: str,
        current_sign_count: int,
    ) -> VerifiedAuthentication:
        if response.get("challenge") != expected_challenge.decode():
            raise VerificationError("challenge mismatch")
        return VerifiedAuthentication(
            credential_id=response["id"],
            new_sign_count=response.get("signCount", current_sign_count + 1),
            device_type=DeviceType.MULTI_DEVICE,
            backed_up=True,
        )


def attestation(challenge: str, credential_id: str, sign_count: int = 0) -> dict[str, Any]:
    return {"id": credential_id, "rawId": credential_id, "challenge": challenge, "signCount": sign_count}


def assertion(challenge: str, credential_id: str, sign_count: Optional[int] = None) -> dict[str, Any]:
    response: dict[str, Any] = {"id": credential_id, "rawId": credential_id, "challenge": challenge}
    if sign_count is not None:
        response["signCount"] = sign_count
    return response


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier() -> FakeWebAuthnVerifier:
    return FakeWebAuthnVerifier()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="memory",
        debug=True,  # plain-http cookies for the test client
        bcrypt_rounds=4,
        admin_password=ADMIN_PASSWORD,
        admin_session_secret="s" * 40,
        webauthn_challenge_secret="test-challenge-secret-0123456789abcdef",
        log_format="text",
        log_level="warning",
    )


@pytest.fixture
def stores():
    return memory_stores()


@pytest.fixture
def services(settings, stores, clock, verifier):
    return build_services(settings, stores, clock=clock, verifier=verifier)


@pytest.fixture
def make_user(services):
    """Create a user with a personal workspace they own."""

    async def _make(email: str = "alice@example.com"):
        user = unwrap(await services.users.create_user(email))
        organization = unwrap(
            await services.organizations.create_organization(personal_organization_name(user.email))
        )
        unwrap(
            await services.memberships.add_member(
                user.id, organization.id, MembershipRole.OWNER, is_personal_org=True
            )
        )
        return user, organization

    return _make


@pytest.fixture
def make_team(services):
    """Create a shared organization with ``admin`` as its admin."""

    async def _make(admin, name: str = "Acme"):
        organization = unwrap(await services.organizations.create_organization(name))
        membership = unwrap(
            await services.memberships.add_member(admin.id, organization.id, MembershipRole.ADMIN)
        )
        return organization, membership

    return _make


@pytest.fixture
def app(services):
    return create_app(services=services)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await drain_refresh_tasks()
