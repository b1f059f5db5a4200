"""
Stateless WebAuthn challenges.

A challenge is an HS256 JWT carrying the ceremony purpose, an optional
subject (user id or signup identifier), a random nonce and an expiry. Its
UTF-8 bytes are handed to the authenticator as the WebAuthn challenge, so the
server needs no storage between the options and verify calls.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import jwt

from app.core.clock import Clock, SystemClock
from app.core.errors import ErrorType, Ok, Result, fail

CHALLENGE_TTL = timedelta(minutes=5)
ALGORITHM = "HS256"


class ChallengePurpose(str, Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


@dataclass(frozen=True)
class ChallengeClaims:
    purpose: ChallengePurpose
    subject: Optional[str]
    nonce: str
    expires_at: datetime


def challenge_bytes(challenge: str) -> bytes:
    return challenge.encode("utf-8")


class ChallengeManager:
    def __init__(
        self,
        secret: str,
        *,
        clock: Optional[Clock] = None,
        ttl: timedelta = CHALLENGE_TTL,
    ):
        self._secret = secret
        self._clock = clock or SystemClock()
        self.ttl = ttl

    def issue(self, purpose: ChallengePurpose, subject: Optional[str] = None) -> str:
        payload = {
            "purpose": purpose.value,
            "nonce": secrets.token_urlsafe(16),
            "exp": int((self._clock.now() + self.ttl).timestamp()),
        }
        if subject is not None:
            payload["sub"] = subject
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, challenge: str, purpose: ChallengePurpose) -> Result[ChallengeClaims]:
        """Check signature, shape and purpose against the injected clock."""
        try:
            payload = jwt.decode(
                challenge,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "require": ["exp", "purpose", "nonce"]},
            )
        except jwt.PyJWTError as exc:
            return fail(ErrorType.CHALLENGE_INVALID, "Invalid challenge", reason=str(exc))

        if payload.get("purpose") != purpose.value:
            return fail(ErrorType.CHALLENGE_INVALID, "Challenge was issued for another ceremony")

        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError):
            return fail(ErrorType.CHALLENGE_INVALID, "Invalid challenge expiry")

        if self._clock.now() >= expires_at:
            return fail(ErrorType.CHALLENGE_EXPIRED, "Challenge has expired")

        return Ok(
            ChallengeClaims(
                purpose=purpose,
                subject=payload.get("sub"),
                nonce=payload["nonce"],
                expires_at=expires_at,
            )
        )
