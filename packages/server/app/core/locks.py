"""
Per-organization mutual exclusion for membership mutations.

The last-admin check and the write that follows it must not interleave with
another mutation in the same organization.
"""

from __future__ import annotations

import asyncio
import uuid
import weakref
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from app.core.errors import ErrorType, StorageFailure

log = structlog.get_logger()


class OrganizationLocks(Protocol):
    def hold(self, organization_id: uuid.UUID) -> AbstractAsyncContextManager[None]: ...


class LocalOrganizationLocks:
    """In-process locks; correct for a single worker.

    Entries disappear once no caller holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, organization_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.get(organization_id)
        if lock is None:
            lock = self._locks[organization_id] = asyncio.Lock()
        async with lock:
            yield


class RedisOrganizationLocks:
    """Redis-backed locks shared by every worker pointed at the same Redis."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ) -> None:
        self._redis = client
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @staticmethod
    def key(organization_id: uuid.UUID) -> str:
        return f"org:{organization_id}:membership"

    @asynccontextmanager
    async def hold(self, organization_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._redis.lock(
            self.key(organization_id),
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise StorageFailure(
                ErrorType.MEMBERSHIP_STORAGE_ERROR, "Failed to lock organization", exc
            ) from exc
        if not acquired:
            raise StorageFailure(
                ErrorType.MEMBERSHIP_STORAGE_ERROR, "Timed out waiting for organization lock"
            )

        log.debug("org_lock.acquired", org_id=str(organization_id))
        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError as exc:
                # The lock expired before release; the write may have raced.
                log.warning("org_lock.release_failed", org_id=str(organization_id), error=str(exc))
                raise StorageFailure(
                    ErrorType.MEMBERSHIP_STORAGE_ERROR, "Failed to release organization lock", exc
                ) from exc
