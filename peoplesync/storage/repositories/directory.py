"""Tenant directory: read-only organization and membership lookups."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from peoplesync.models.database import Organization, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseTenantDirectory:
    """Answers "does organization X exist and is it active?" and
    "does user Y belong to organization X?".

    Every call reads current state; nothing is cached between requests so a
    deactivation takes effect on the next lookup.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_organization(self, organization_id: str) -> Organization | None:
        if not organization_id:
            return None
        async with AsyncSession(self._engine) as session:
            return await session.get(Organization, organization_id)

    async def get_active_organization(self, organization_id: str) -> Organization | None:
        """Return the organization only if it exists and is active."""
        organization = await self.get_organization(organization_id)
        if organization is None or not organization.is_active:
            logger.debug(
                "organization_unavailable",
                org_id=organization_id,
                found=organization is not None,
            )
            return None
        return organization

    async def is_active(self, organization_id: str) -> bool:
        return await self.get_active_organization(organization_id) is not None

    async def user_belongs_to(self, user_id: str, organization_id: str) -> bool:
        if not user_id or not organization_id:
            return False
        async with AsyncSession(self._engine) as session:
            stmt = select(User.id).where(
                col(User.id) == user_id,
                col(User.organization_id) == organization_id,
            )
            result = await session.execute(stmt)
            return result.first() is not None
