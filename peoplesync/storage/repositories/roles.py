"""Role repository: per-organization permission bundles."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from peoplesync.exceptions import DuplicateRecordError
from peoplesync.models.database import Role
from peoplesync.storage.tenant_scope import scoped_select

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseRoleRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_by_name(
        self, organization_id: str, name: str, *, active_only: bool = True
    ) -> Role | None:
        async with AsyncSession(self._engine) as session:
            stmt = scoped_select(Role, organization_id).where(col(Role.name) == name)
            if active_only:
                stmt = stmt.where(col(Role.is_active).is_(True))
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get_by_id(self, role_id: str) -> Role | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(Role, role_id)

    async def create(
        self,
        organization_id: str,
        name: str,
        display_name: str,
        description: str | None = None,
        level: int = 0,
        is_system: bool = False,
    ) -> Role:
        """Insert a role. Raises DuplicateRecordError if (organization, name) is taken."""
        role = Role(
            organization_id=organization_id,
            name=name,
            display_name=display_name,
            description=description,
            level=level,
            is_system=is_system,
            is_active=True,
        )
        async with AsyncSession(self._engine) as session:
            session.add(role)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                msg = f"Role {name!r} already exists in organization {organization_id}"
                raise DuplicateRecordError(msg) from exc
            await session.refresh(role)

        logger.info("role_created", role_id=role.id, org_id=organization_id, name=name)
        return role
