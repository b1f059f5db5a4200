"""
Secret generation and bcrypt hashing for API tokens and invitation codes.

bcrypt is CPU bound, so hashing and comparison run in a worker thread.
"""

from __future__ import annotations

import asyncio
import secrets
from functools import lru_cache

import bcrypt

INVITATION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITATION_CODE_LENGTH = 8

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def generate_token_secret() -> str:
    return secrets.token_urlsafe(32)


def generate_invitation_code(length: int = INVITATION_CODE_LENGTH) -> str:
    """Short human-typeable code without 0/O and 1/I lookalikes."""
    return "".join(secrets.choice(INVITATION_CODE_ALPHABET) for _ in range(length))


def _hash(secret: str, rounds: int) -> str:
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _check(secret: str, hashed: str) -> bool:
    encoded = secret.encode()
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode())
    except ValueError:
        # malformed stored hash
        return False


@lru_cache(maxsize=8)
def dummy_hash(rounds: int) -> str:
    """A throwaway hash with the configured cost, compared against when a token id is unknown."""
    return _hash(secrets.token_urlsafe(16), rounds)


async def hash_secret(secret: str, rounds: int = 12) -> str:
    return await asyncio.to_thread(_hash, secret, rounds)


async def verify_secret(secret: str, hashed: str) -> bool:
    return await asyncio.to_thread(_check, secret, hashed)
