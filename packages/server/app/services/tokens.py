"""
Token service: personal API tokens for API clients and the browser extension.

A raw token is ``<id>:<secret>``. Lookup is by id; only a bcrypt hash of the
secret is stored. Validation always runs one bcrypt comparison, also when the
id is unknown, so timing does not reveal whether a token exists.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from yoink_shared.schemas.common import AuthMethod

from app.core.clock import Clock, SystemClock
from app.core.context import AuthContext
from app.core.errors import (
    Err,
    ErrorType,
    Ok,
    Result,
    StorageFailure,
    fail,
    not_a_member,
    storage_errors,
)
from app.core.hashing import dummy_hash, generate_token_secret, hash_secret, verify_secret
from app.models.api_token import ApiToken
from app.services.memberships import MembershipService
from app.services.users import UserService
from app.stores.ports import TokenStore

log = structlog.get_logger()

DEFAULT_MAX_TOKENS_PER_USER = 10


@dataclass(frozen=True)
class IssuedToken:
    token: ApiToken
    raw: str  # shown to the user once, never stored


def parse_raw_token(raw: str) -> Optional[tuple[str, str]]:
    token_id, sep, secret = raw.partition(":")
    if not sep or not token_id or not secret:
        return None
    return token_id, secret


def _token_not_found():
    return fail(ErrorType.TOKEN_NOT_FOUND, "Token not found")


class TokenService:
    def __init__(
        self,
        tokens: TokenStore,
        users: UserService,
        memberships: MembershipService,
        *,
        clock: Optional[Clock] = None,
        max_tokens_per_user: int = DEFAULT_MAX_TOKENS_PER_USER,
        bcrypt_rounds: int = 12,
    ):
        self._tokens = tokens
        self._users = users
        self._memberships = memberships
        self._clock = clock or SystemClock()
        self.max_tokens_per_user = max_tokens_per_user
        self._bcrypt_rounds = bcrypt_rounds

    @storage_errors
    async def validate_token(self, raw: str) -> Result[AuthContext]:
        parsed = parse_raw_token(raw)
        if parsed is None:
            return fail(ErrorType.INVALID_TOKEN_FORMAT, "Token must have the form <id>:<secret>")
        token_id, secret = parsed

        try:
            parsed_id: Optional[uuid.UUID] = uuid.UUID(token_id)
        except ValueError:
            parsed_id = None
        token = await self._tokens.get(parsed_id) if parsed_id is not None else None

        if token is None:
            await verify_secret(secret, dummy_hash(self._bcrypt_rounds))
            log.info("token.validation_failed", reason="not_found")
            return _token_not_found()

        if not await verify_secret(secret, token.token_hash):
            log.info("token.validation_failed", reason="invalid_secret", token_id=str(token.id))
            return fail(ErrorType.INVALID_SECRET, "Invalid token secret")

        user = await self._users.get_user(token.user_id)
        if isinstance(user, Err):
            return user

        membership = await self._memberships.get_membership(token.user_id, token.organization_id)
        if isinstance(membership, Err):
            return membership
        if membership.value is None:
            return not_a_member(token.user_id, token.organization_id)

        await self._record_use(token.id)
        return Ok(
            AuthContext(
                user_id=token.user_id,
                organization_id=token.organization_id,
                method=AuthMethod.TOKEN,
            )
        )

    async def _record_use(self, token_id: uuid.UUID) -> None:
        try:
            await self._tokens.touch(token_id, self._clock.now())
        except StorageFailure as exc:
            log.warning("token.touch_failed", token_id=str(token_id), error=str(exc.cause or exc))

    @storage_errors
    async def create_token(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, name: str
    ) -> Result[IssuedToken]:
        held = await self._tokens.count_for_user(user_id, organization_id)
        if held >= self.max_tokens_per_user:
            return fail(
                ErrorType.TOKEN_LIMIT_REACHED,
                f"A user may hold at most {self.max_tokens_per_user} tokens per organization",
                limit=self.max_tokens_per_user,
            )

        secret = generate_token_secret()
        token = await self._tokens.add(
            ApiToken(
                user_id=user_id,
                organization_id=organization_id,
                token_hash=await hash_secret(secret, self._bcrypt_rounds),
                name=name,
                created_at=self._clock.now(),
            )
        )
        log.info(
            "token.created",
            token_id=str(token.id),
            user_id=str(user_id),
            org_id=str(organization_id),
        )
        return Ok(IssuedToken(token=token, raw=f"{token.id}:{secret}"))

    @storage_errors
    async def list_tokens(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Result[list[ApiToken]]:
        return Ok(await self._tokens.list_for_user(user_id, organization_id))

    @storage_errors
    async def revoke_token(self, user_id: uuid.UUID, token_id: uuid.UUID) -> Result[None]:
        token = await self._tokens.get(token_id)
        if token is None:
            return _token_not_found()
        if token.user_id != user_id:
            return fail(ErrorType.TOKEN_OWNERSHIP_ERROR, "Token belongs to another user")

        await self._tokens.delete(token_id)
        log.info("token.revoked", token_id=str(token_id), user_id=str(user_id))
        return Ok(None)
