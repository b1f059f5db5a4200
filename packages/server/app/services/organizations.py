"""
Organization service: creation and lookup of tenants.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

import structlog

from app.core.clock import Clock, SystemClock
from app.core.errors import Ok, Result, organization_not_found, storage_errors
from app.models.organization import Organization
from app.stores.ports import OrganizationStore

log = structlog.get_logger()


def personal_organization_name(email: str) -> str:
    return f"{email}'s Workspace"


class OrganizationService:
    def __init__(self, organizations: OrganizationStore, *, clock: Optional[Clock] = None):
        self._organizations = organizations
        self._clock = clock or SystemClock()

    @storage_errors
    async def get_organization(self, organization_id: uuid.UUID) -> Result[Organization]:
        organization = await self._organizations.get(organization_id)
        if organization is None:
            return organization_not_found(organization_id)
        return Ok(organization)

    @storage_errors
    async def get_organizations(
        self, organization_ids: Sequence[uuid.UUID]
    ) -> Result[list[Organization]]:
        return Ok(await self._organizations.get_many(organization_ids))

    @storage_errors
    async def create_organization(self, name: str) -> Result[Organization]:
        organization = await self._organizations.add(
            Organization(name=name.strip(), created_at=self._clock.now())
        )
        log.info("org.created", org_id=str(organization.id))
        return Ok(organization)
