"""
Operator (admin) sessions.

Separate from tenant sessions: one configured password, no session table.
A token is ``base64url(json payload) + "." + base64url(HMAC-SHA256(payload_b64))``
and is trusted only while the signature matches and ``created_at`` is within
the TTL.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog

from app.core.clock import Clock, SystemClock
from app.core.errors import ErrorType, Ok, Result, fail

log = structlog.get_logger()

DEFAULT_ADMIN_SESSION_TTL = timedelta(hours=24)
MIN_SECRET_LENGTH = 32


@dataclass(frozen=True)
class AdminSession:
    created_at: datetime
    is_admin: bool = True


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class AdminSessionService:
    def __init__(
        self,
        admin_password: str,
        session_secret: str,
        *,
        clock: Optional[Clock] = None,
        session_ttl: timedelta = DEFAULT_ADMIN_SESSION_TTL,
    ):
        if len(session_secret) < MIN_SECRET_LENGTH:
            raise ValueError(f"session_secret must be at least {MIN_SECRET_LENGTH} characters")
        self._password_digest = hashlib.sha256(admin_password.encode()).digest()
        self._secret = session_secret.encode()
        self._clock = clock or SystemClock()
        self.session_ttl = session_ttl

    def _sign(self, payload_b64: str) -> str:
        return _b64encode(hmac.new(self._secret, payload_b64.encode(), hashlib.sha256).digest())

    def login(self, password: str) -> Result[str]:
        provided = hashlib.sha256(password.encode()).digest()
        if not hmac.compare_digest(provided, self._password_digest):
            log.warning("admin.login_failed")
            return fail(ErrorType.INVALID_ADMIN_PASSWORD, "Invalid password")
        log.info("admin.login")
        return Ok(self.create_session_token())

    def create_session_token(self) -> str:
        payload = json.dumps(
            {"isAdmin": True, "createdAt": self._clock.now().isoformat()},
            separators=(",", ":"),
        )
        payload_b64 = _b64encode(payload.encode())
        return f"{payload_b64}.{self._sign(payload_b64)}"

    def verify_session(self, token: str) -> Optional[AdminSession]:
        parts = token.split(".")
        if len(parts) != 2:
            return None
        payload_b64, signature = parts

        if not hmac.compare_digest(signature.encode(), self._sign(payload_b64).encode()):
            return None

        try:
            data = json.loads(_b64decode(payload_b64))
            created_at = datetime.fromisoformat(data["createdAt"])
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
            return None

        if data.get("isAdmin") is not True or created_at.tzinfo is None:
            return None
        if self._clock.now() - created_at > self.session_ttl:
            return None
        return AdminSession(created_at=created_at)
