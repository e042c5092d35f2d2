"""Organization repository: the administrative write path for tenants."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from peoplesync.exceptions import DuplicateRecordError
from peoplesync.models.database import Organization, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseOrganizationRepository:
    """Creates and (de)activates organizations. Never deletes them."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self,
        name: str,
        email: str,
        display_name: str = "",
        organization_id: str | None = None,
        is_active: bool = True,
    ) -> Organization:
        organization = Organization(
            name=name,
            display_name=display_name or name,
            email=email,
            is_active=is_active,
        )
        if organization_id:
            organization.id = organization_id

        async with AsyncSession(self._engine) as session:
            session.add(organization)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                msg = f"Organization with email {email!r} or id already exists"
                raise DuplicateRecordError(msg) from exc
            await session.refresh(organization)

        logger.info("organization_created", org_id=organization.id, name=name)
        return organization

    async def set_active(self, organization_id: str, is_active: bool) -> Organization | None:
        async with AsyncSession(self._engine) as session:
            organization = await session.get(Organization, organization_id)
            if organization is None:
                return None
            organization.is_active = is_active
            organization.updated_at = _utc_now()
            session.add(organization)
            await session.commit()
            await session.refresh(organization)

        logger.info("organization_status_changed", org_id=organization_id, is_active=is_active)
        return organization
