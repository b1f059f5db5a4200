"""
WebAuthn verifier port and its py_webauthn adapter.

The passkey service only sees JSON-ready option dicts and the small result
records below; attestation and assertion cryptography stay in the library.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Union

import structlog
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.exceptions import (
    InvalidAuthenticationResponse,
    InvalidCBORData,
    InvalidJSONStructure,
    InvalidRegistrationResponse,
)
from webauthn.helpers.structs import (
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    CredentialDeviceType,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)
from yoink_shared.schemas.common import DeviceType

log = structlog.get_logger()

_LIBRARY_ERRORS = (
    InvalidRegistrationResponse,
    InvalidAuthenticationResponse,
    InvalidJSONStructure,
    InvalidCBORData,
    ValueError,
)


class VerificationError(Exception):
    """The authenticator response did not verify; ``reason`` is safe to show."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class CredentialDescriptor:
    id: str
    transports: Optional[list[str]] = None


@dataclass(frozen=True)
class VerifiedRegistration:
    credential_id: str
    public_key: str
    sign_count: int
    device_type: DeviceType
    backed_up: bool
    transports: Optional[list[str]] = None


@dataclass(frozen=True)
class VerifiedAuthentication:
    credential_id: str
    new_sign_count: int
    device_type: DeviceType
    backed_up: bool


class WebAuthnVerifier(Protocol):
    def registration_options(
        self,
        *,
        user_handle: bytes,
        user_name: str,
        challenge: bytes,
        exclude: Sequence[CredentialDescriptor],
    ) -> dict[str, Any]: ...

    def authentication_options(
        self, *, challenge: bytes, allow: Sequence[CredentialDescriptor]
    ) -> dict[str, Any]: ...

    def verify_registration(
        self, *, response: dict[str, Any], expected_challenge: bytes
    ) -> VerifiedRegistration: ...

    def verify_authentication(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: bytes,
        public_key: str,
        current_sign_count: int,
    ) -> VerifiedAuthentication: ...


def _transports(values: Optional[Sequence[str]]) -> Optional[list[AuthenticatorTransport]]:
    if not values:
        return None
    known = {t.value for t in AuthenticatorTransport}
    return [AuthenticatorTransport(v) for v in values if v in known]


def _descriptors(credentials: Sequence[CredentialDescriptor]) -> list[PublicKeyCredentialDescriptor]:
    return [
        PublicKeyCredentialDescriptor(
            id=base64url_to_bytes(c.id),
            transports=_transports(c.transports),
        )
        for c in credentials
    ]


def _device_type(value: Union[CredentialDeviceType, str]) -> DeviceType:
    if value == CredentialDeviceType.MULTI_DEVICE:
        return DeviceType.MULTI_DEVICE
    return DeviceType.SINGLE_DEVICE


class PyWebAuthnVerifier:
    """Relying-party adapter over the ``webauthn`` package."""

    def __init__(self, *, rp_id: str, rp_name: str, origins: Sequence[str]):
        self.rp_id = rp_id
        self.rp_name = rp_name
        self.origins = list(origins)

    def registration_options(
        self,
        *,
        user_handle: bytes,
        user_name: str,
        challenge: bytes,
        exclude: Sequence[CredentialDescriptor],
    ) -> dict[str, Any]:
        options = generate_registration_options(
            rp_id=self.rp_id,
            rp_name=self.rp_name,
            user_id=user_handle,
            user_name=user_name,
            challenge=challenge,
            exclude_credentials=_descriptors(exclude),
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            ),
        )
        return json.loads(options_to_json(options))

    def authentication_options(
        self, *, challenge: bytes, allow: Sequence[CredentialDescriptor]
    ) -> dict[str, Any]:
        options = generate_authentication_options(
            rp_id=self.rp_id,
            challenge=challenge,
            allow_credentials=_descriptors(allow),
            user_verification=UserVerificationRequirement.PREFERRED,
        )
        return json.loads(options_to_json(options))

    def verify_registration(
        self, *, response: dict[str, Any], expected_challenge: bytes
    ) -> VerifiedRegistration:
        try:
            verified = verify_registration_response(
                credential=response,
                expected_challenge=expected_challenge,
                expected_rp_id=self.rp_id,
                expected_origin=self.origins,
            )
        except _LIBRARY_ERRORS as exc:
            log.info("webauthn.registration_rejected", error=str(exc))
            raise VerificationError(str(exc) or "registration response rejected") from exc

        return VerifiedRegistration(
            credential_id=bytes_to_base64url(verified.credential_id),
            public_key=bytes_to_base64url(verified.credential_public_key),
            sign_count=verified.sign_count,
            device_type=_device_type(verified.credential_device_type),
            backed_up=verified.credential_backed_up,
            transports=(response.get("response") or {}).get("transports"),
        )

    def verify_authentication(
        self,
        *,
        response: dict[str, Any],
        expected_challenge: bytes,
        public_key: str,
        current_sign_count: int,
    ) -> VerifiedAuthentication:
        try:
            verified = verify_authentication_response(
                credential=response,
                expected_challenge=expected_challenge,
                expected_rp_id=self.rp_id,
                expected_origin=self.origins,
                credential_public_key=base64url_to_bytes(public_key),
                credential_current_sign_count=current_sign_count,
            )
        except _LIBRARY_ERRORS as exc:
            log.info("webauthn.authentication_rejected", error=str(exc))
            raise VerificationError(str(exc) or "authentication response rejected") from exc

        return VerifiedAuthentication(
            credential_id=bytes_to_base64url(verified.credential_id),
            new_sign_count=verified.new_sign_count,
            device_type=_device_type(verified.credential_device_type),
            backed_up=verified.credential_backed_up,
        )
