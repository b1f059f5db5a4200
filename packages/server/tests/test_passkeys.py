"""
Tests for PasskeyService.

The WebAuthn cryptography is replaced by FakeWebAuthnVerifier (conftest),
which only checks that the response echoes the issued challenge.
"""

from __future__ import annotations

import uuid

import pytest

from app.core.errors import Err, ErrorType, Ok
from conftest import assertion, attestation


async def _register(services, user, credential_id="cred-1", sign_count=0):
    ceremony = (await services.passkeys.generate_registration_options(user.id)).value
    return await services.passkeys.verify_registration(
        user.id, ceremony.challenge, attestation(ceremony.challenge, credential_id, sign_count)
    )


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_passkey(self, services, make_user):
        user, _ = await make_user()
        ceremony = (await services.passkeys.generate_registration_options(user.id)).value
        assert ceremony.options["challenge"] == ceremony.challenge
        assert ceremony.options["user"]["name"] == user.email

        result = await services.passkeys.verify_registration(
            user.id, ceremony.challenge, attestation(ceremony.challenge, "cred-1"), "Laptop"
        )
        assert isinstance(result, Ok)
        assert result.value.id == "cred-1"
        assert result.value.name == "Laptop"
        assert result.value.device_type == "multiDevice"
        assert result.value.transports == ["internal"]

    @pytest.mark.asyncio
    async def test_existing_credentials_are_excluded(self, services, make_user):
        user, _ = await make_user()
        await _register(services, user, "cred-1")
        ceremony = (await services.passkeys.generate_registration_options(user.id)).value
        assert ceremony.options["excludeCredentials"] == ["cred-1"]

    @pytest.mark.asyncio
    async def test_challenge_bound_to_user(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        bob, _ = await make_user("bob@example.com")
        ceremony = (await services.passkeys.generate_registration_options(alice.id)).value

        result = await services.passkeys.verify_registration(
            bob.id, ceremony.challenge, attestation(ceremony.challenge, "cred-1")
        )
        assert result.type is ErrorType.VERIFICATION_FAILED

    @pytest.mark.asyncio
    async def test_expired_challenge(self, services, make_user, clock):
        user, _ = await make_user()
        ceremony = (await services.passkeys.generate_registration_options(user.id)).value
        clock.advance(minutes=5)
        result = await services.passkeys.verify_registration(
            user.id, ceremony.challenge, attestation(ceremony.challenge, "cred-1")
        )
        assert result.type is ErrorType.CHALLENGE_EXPIRED

    @pytest.mark.asyncio
    async def test_invalid_challenge_reports_verification_failure(self, services, make_user):
        user, _ = await make_user()
        result = await services.passkeys.verify_registration(
            user.id, "garbage", attestation("garbage", "cred-1")
        )
        assert result.type is ErrorType.VERIFICATION_FAILED
        assert result.error.details["reason"] == "invalid challenge"

    @pytest.mark.asyncio
    async def test_verifier_rejection(self, services, make_user):
        user, _ = await make_user()
        ceremony = (await services.passkeys.generate_registration_options(user.id)).value
        result = await services.passkeys.verify_registration(
            user.id, ceremony.challenge, attestation("something-else", "cred-1")
        )
        assert result.type is ErrorType.VERIFICATION_FAILED
        assert result.error.details["reason"] == "challenge mismatch"

    @pytest.mark.asyncio
    async def test_unknown_user(self, services):
        result = await services.passkeys.generate_registration_options(uuid.uuid4())
        assert result.type is ErrorType.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_credential_id_taken_by_another_user(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        bob, _ = await make_user("bob@example.com")
        await _register(services, alice, "cred-1")

        result = await _register(services, bob, "cred-1")
        assert result.type is ErrorType.CREDENTIAL_ALREADY_REGISTERED

        kept = (await services.passkeys.list_credentials(alice.id)).value
        assert [c.id for c in kept] == ["cred-1"]
        assert kept[0].user_id == alice.id
        assert (await services.passkeys.list_credentials(bob.id)).value == []

    @pytest.mark.asyncio
    async def test_signup_attestation_with_taken_credential_id(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        await _register(services, alice, "cred-1")
        ceremony = (
            await services.passkeys.generate_signup_registration_options(
                "new@example.com", "new@example.com"
            )
        ).value

        result = await services.passkeys.verify_signup_registration(
            "new@example.com", ceremony.challenge, attestation(ceremony.challenge, "cred-1")
        )
        assert result.type is ErrorType.CREDENTIAL_ALREADY_REGISTERED


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_login(self, services, stores, make_user, clock):
        user, _ = await make_user()
        await _register(services, user, "cred-1", sign_count=1)

        ceremony = (await services.passkeys.generate_authentication_options(user.id)).value
        assert ceremony.options["allowCredentials"] == ["cred-1"]

        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "cred-1", sign_count=2)
        )
        assert isinstance(result, Ok)
        assert result.value.user_id == user.id
        assert stores.credentials.rows["cred-1"]["counter"] == 2
        assert stores.credentials.rows["cred-1"]["last_used_at"] == clock.now()

    @pytest.mark.asyncio
    async def test_discoverable_login(self, services, make_user):
        user, _ = await make_user()
        await _register(services, user, "cred-1")

        ceremony = (await services.passkeys.generate_authentication_options()).value
        assert ceremony.options["allowCredentials"] == []
        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "cred-1")
        )
        assert result.value.user_id == user.id

    @pytest.mark.asyncio
    async def test_options_for_user_without_passkeys(self, services, make_user):
        user, _ = await make_user()
        result = await services.passkeys.generate_authentication_options(user.id)
        assert result.type is ErrorType.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_counter_replay(self, services, make_user):
        user, _ = await make_user()
        await _register(services, user, "cred-1", sign_count=5)

        ceremony = (await services.passkeys.generate_authentication_options(user.id)).value
        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "cred-1", sign_count=5)
        )
        assert result.type is ErrorType.VERIFICATION_FAILED
        assert result.error.details["reason"] == "counter replay"

    @pytest.mark.asyncio
    async def test_zero_counters_are_allowed(self, services, make_user):
        user, _ = await make_user()
        await _register(services, user, "cred-1", sign_count=0)

        ceremony = (await services.passkeys.generate_authentication_options(user.id)).value
        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "cred-1", sign_count=0)
        )
        assert isinstance(result, Ok)

    @pytest.mark.asyncio
    async def test_unknown_credential(self, services):
        ceremony = (await services.passkeys.generate_authentication_options()).value
        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "ghost")
        )
        assert result.type is ErrorType.CREDENTIAL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_challenge_scoped_to_other_user(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        bob, _ = await make_user("bob@example.com")
        await _register(services, alice, "alice-key")
        await _register(services, bob, "bob-key")

        ceremony = (await services.passkeys.generate_authentication_options(alice.id)).value
        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "bob-key")
        )
        assert result.type is ErrorType.VERIFICATION_FAILED

    @pytest.mark.asyncio
    async def test_registration_challenge_cannot_log_in(self, services, make_user):
        user, _ = await make_user()
        await _register(services, user, "cred-1")
        ceremony = (await services.passkeys.generate_registration_options(user.id)).value

        result = await services.passkeys.verify_authentication(
            ceremony.challenge, assertion(ceremony.challenge, "cred-1")
        )
        assert result.type is ErrorType.VERIFICATION_FAILED


class TestCredentialManagement:
    @pytest.mark.asyncio
    async def test_delete_requires_another_passkey(self, services, make_user):
        user, _ = await make_user()
        await _register(services, user, "cred-1")

        result = await services.passkeys.delete_credential_for_user("cred-1", user.id)
        assert result.type is ErrorType.CANNOT_DELETE_LAST_PASSKEY

        await _register(services, user, "cred-2")
        assert isinstance(await services.passkeys.delete_credential_for_user("cred-1", user.id), Ok)
        remaining = (await services.passkeys.list_credentials(user.id)).value
        assert [c.id for c in remaining] == ["cred-2"]

    @pytest.mark.asyncio
    async def test_delete_other_users_passkey(self, services, make_user):
        alice, _ = await make_user("alice@example.com")
        mallory, _ = await make_user("mallory@example.com")
        await _register(services, alice, "cred-1")

        result = await services.passkeys.delete_credential_for_user("cred-1", mallory.id)
        assert isinstance(result, Err)
        assert result.type is ErrorType.CREDENTIAL_OWNERSHIP_ERROR

    @pytest.mark.asyncio
    async def test_delete_unknown(self, services, make_user):
        user, _ = await make_user()
        result = await services.passkeys.delete_credential_for_user("ghost", user.id)
        assert result.type is ErrorType.CREDENTIAL_NOT_FOUND
