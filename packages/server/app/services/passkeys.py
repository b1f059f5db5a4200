"""
Passkey service: WebAuthn registration and login ceremonies plus credential
management.

Each ceremony is two calls: the options call issues a signed challenge bound
to the user (or signup identifier), and the verify call checks that challenge
before handing the authenticator response to the verifier.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from app.core.clock import Clock, SystemClock
from app.core.errors import (
    Err,
    ErrorType,
    Ok,
    Result,
    fail,
    storage_errors,
    user_not_found,
    verification_failed,
)
from app.models.passkey_credential import PasskeyCredential
from app.services.challenge import (
    ChallengeClaims,
    ChallengeManager,
    ChallengePurpose,
    challenge_bytes,
)
from app.services.users import UserService, normalize_email
from app.services.webauthn import (
    CredentialDescriptor,
    VerificationError,
    VerifiedRegistration,
    WebAuthnVerifier,
)
from app.stores.ports import CredentialStore

log = structlog.get_logger()


@dataclass(frozen=True)
class CeremonyOptions:
    options: dict[str, Any]
    challenge: str


@dataclass(frozen=True)
class AuthenticatedPasskey:
    user_id: uuid.UUID
    credential_id: str


def signup_subject(identifier: str) -> str:
    return f"signup:{normalize_email(identifier)}"


def _descriptor(credential: PasskeyCredential) -> CredentialDescriptor:
    return CredentialDescriptor(id=credential.id, transports=credential.transports)


def _credential_taken(credential_id: str) -> Err:
    return fail(
        ErrorType.CREDENTIAL_ALREADY_REGISTERED,
        "This passkey is already registered",
        credential_id=credential_id,
    )


class PasskeyService:
    def __init__(
        self,
        credentials: CredentialStore,
        users: UserService,
        verifier: WebAuthnVerifier,
        challenges: ChallengeManager,
        *,
        clock: Optional[Clock] = None,
    ):
        self._credentials = credentials
        self._users = users
        self._verifier = verifier
        self._challenges = challenges
        self._clock = clock or SystemClock()

    def _check_challenge(
        self, challenge: str, purpose: ChallengePurpose, subject: Optional[str] = None
    ) -> Result[ChallengeClaims]:
        claims = self._challenges.verify(challenge, purpose)
        if isinstance(claims, Err):
            if claims.type is ErrorType.CHALLENGE_EXPIRED:
                return claims
            return verification_failed("invalid challenge")
        if subject is not None and claims.value.subject != subject:
            return verification_failed("challenge was issued for someone else")
        return claims

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @storage_errors
    async def generate_registration_options(self, user_id: uuid.UUID) -> Result[CeremonyOptions]:
        user = await self._users.get_user(user_id)
        if isinstance(user, Err):
            return user

        existing = await self._credentials.list_for_user(user_id)
        challenge = self._challenges.issue(ChallengePurpose.REGISTRATION, str(user_id))
        options = self._verifier.registration_options(
            user_handle=user_id.bytes,
            user_name=user.value.email,
            challenge=challenge_bytes(challenge),
            exclude=[_descriptor(c) for c in existing],
        )
        return Ok(CeremonyOptions(options=options, challenge=challenge))

    async def generate_signup_registration_options(
        self, email: str, identifier: str
    ) -> Result[CeremonyOptions]:
        """Options for someone who has no user row yet; the challenge binds ``identifier``."""
        subject = signup_subject(identifier)
        challenge = self._challenges.issue(ChallengePurpose.REGISTRATION, subject)
        options = self._verifier.registration_options(
            user_handle=subject.encode("utf-8"),
            user_name=normalize_email(email),
            challenge=challenge_bytes(challenge),
            exclude=[],
        )
        return Ok(CeremonyOptions(options=options, challenge=challenge))

    def _verify_attestation(
        self, challenge: str, subject: str, response: dict[str, Any]
    ) -> Result[VerifiedRegistration]:
        claims = self._check_challenge(challenge, ChallengePurpose.REGISTRATION, subject)
        if isinstance(claims, Err):
            return claims
        try:
            return Ok(
                self._verifier.verify_registration(
                    response=response, expected_challenge=challenge_bytes(challenge)
                )
            )
        except VerificationError as exc:
            return verification_failed(exc.reason)

    @storage_errors
    async def verify_registration(
        self,
        user_id: uuid.UUID,
        challenge: str,
        response: dict[str, Any],
        credential_name: Optional[str] = None,
    ) -> Result[PasskeyCredential]:
        verified = self._verify_attestation(challenge, str(user_id), response)
        if isinstance(verified, Err):
            log.info("passkey.registration_failed", user_id=str(user_id), reason=verified.type.value)
            return verified
        return await self.save_registration(user_id, verified.value, credential_name)

    @storage_errors
    async def verify_signup_registration(
        self, identifier: str, challenge: str, response: dict[str, Any]
    ) -> Result[VerifiedRegistration]:
        """Verify only; the credential is saved once the user exists."""
        verified = self._verify_attestation(challenge, signup_subject(identifier), response)
        if isinstance(verified, Err):
            return verified
        if await self._credentials.get(verified.value.credential_id) is not None:
            return _credential_taken(verified.value.credential_id)
        return verified

    @storage_errors
    async def save_registration(
        self,
        user_id: uuid.UUID,
        registration: VerifiedRegistration,
        credential_name: Optional[str] = None,
    ) -> Result[PasskeyCredential]:
        credential = PasskeyCredential(
            id=registration.credential_id,
            user_id=user_id,
            public_key=registration.public_key,
            counter=registration.sign_count,
            transports=registration.transports,
            device_type=registration.device_type.value,
            backed_up=registration.backed_up,
            name=credential_name,
            created_at=self._clock.now(),
        )
        if not await self._credentials.add(credential):
            return _credential_taken(credential.id)
        log.info("passkey.registered", user_id=str(user_id), credential_id=credential.id)
        return Ok(credential)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @storage_errors
    async def generate_authentication_options(
        self, user_id: Optional[uuid.UUID] = None
    ) -> Result[CeremonyOptions]:
        allow: list[CredentialDescriptor] = []
        if user_id is not None:
            credentials = await self._credentials.list_for_user(user_id)
            if not credentials:
                return user_not_found(user_id)
            allow = [_descriptor(c) for c in credentials]

        challenge = self._challenges.issue(
            ChallengePurpose.AUTHENTICATION, str(user_id) if user_id else None
        )
        options = self._verifier.authentication_options(
            challenge=challenge_bytes(challenge), allow=allow
        )
        return Ok(CeremonyOptions(options=options, challenge=challenge))

    @storage_errors
    async def verify_authentication(
        self, challenge: str, response: dict[str, Any]
    ) -> Result[AuthenticatedPasskey]:
        claims = self._check_challenge(challenge, ChallengePurpose.AUTHENTICATION)
        if isinstance(claims, Err):
            return claims

        credential_id = response.get("id") or response.get("rawId")
        credential = await self._credentials.get(credential_id) if credential_id else None
        if credential is None:
            return fail(ErrorType.CREDENTIAL_NOT_FOUND, "Passkey not recognised")

        subject = claims.value.subject
        if subject is not None and subject != str(credential.user_id):
            return verification_failed("challenge was issued for someone else")

        try:
            verified = self._verifier.verify_authentication(
                response=response,
                expected_challenge=challenge_bytes(challenge),
                public_key=credential.public_key,
                current_sign_count=credential.counter,
            )
        except VerificationError as exc:
            log.info("passkey.login_failed", credential_id=credential.id, reason=exc.reason)
            return verification_failed(exc.reason)

        stored = credential.counter
        new = verified.new_sign_count
        if new <= stored and not (new == 0 and stored == 0):
            log.warning(
                "passkey.counter_replay",
                credential_id=credential.id,
                stored=stored,
                presented=new,
            )
            return verification_failed("counter replay")

        await self._credentials.record_use(credential.id, new, self._clock.now())
        log.info("passkey.login", user_id=str(credential.user_id), credential_id=credential.id)
        return Ok(AuthenticatedPasskey(user_id=credential.user_id, credential_id=credential.id))

    # ------------------------------------------------------------------
    # Credential management
    # ------------------------------------------------------------------

    @storage_errors
    async def list_credentials(self, user_id: uuid.UUID) -> Result[list[PasskeyCredential]]:
        return Ok(await self._credentials.list_for_user(user_id))

    @storage_errors
    async def delete_credential_for_user(
        self, credential_id: str, user_id: uuid.UUID
    ) -> Result[None]:
        credential = await self._credentials.get(credential_id)
        if credential is None:
            return fail(ErrorType.CREDENTIAL_NOT_FOUND, "Passkey not found")
        if credential.user_id != user_id:
            return fail(ErrorType.CREDENTIAL_OWNERSHIP_ERROR, "Passkey belongs to another user")
        if await self._credentials.count_for_user(user_id) <= 1:
            return fail(
                ErrorType.CANNOT_DELETE_LAST_PASSKEY,
                "You cannot delete your only passkey",
            )

        await self._credentials.delete(credential_id)
        log.info("passkey.deleted", user_id=str(user_id), credential_id=credential_id)
        return Ok(None)
