"""User repository: PostgreSQL-backed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from peoplesync.exceptions import DuplicateRecordError
from peoplesync.models.database import (
    Department,
    Designation,
    Organization,
    Role,
    User,
    _utc_now,
)
from peoplesync.storage.tenant_scope import scoped_select
from peoplesync.types import UserStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class UserProfileRecord:
    """A user joined with the rows its public profile names."""

    user: User
    role: Role
    organization: Organization
    department: Department | None = None
    designation: Designation | None = None


class DatabaseUserRepository:
    """PostgreSQL-backed user store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_by_id(self, user_id: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(User, user_id)

    async def get_by_clerk_id(self, clerk_id: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.clerk_id) == clerk_id)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def employee_code_exists(self, employee_code: str) -> bool:
        async with AsyncSession(self._engine) as session:
            stmt = select(User.id).where(col(User.employee_code) == employee_code)
            result = await session.execute(stmt)
            return result.first() is not None

    async def create(self, user: User) -> User:
        """Insert a user. Raises DuplicateRecordError on any uniqueness violation."""
        async with AsyncSession(self._engine) as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                msg = f"User {user.clerk_id!r} conflicts with an existing row"
                raise DuplicateRecordError(msg) from exc
            await session.refresh(user)

        logger.info(
            "user_created",
            user_id=user.id,
            org_id=user.organization_id,
            employee_code=user.employee_code,
        )
        return user

    async def update_profile(
        self,
        clerk_id: str,
        *,
        email: str,
        first_name: str,
        last_name: str,
        phone: str | None,
    ) -> User | None:
        """Overwrite the mutable profile fields. Organization and role are untouched."""
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.clerk_id) == clerk_id)
            result = await session.execute(stmt)
            user = result.scalars().first()
            if user is None:
                return None
            user.email = email
            user.first_name = first_name
            user.last_name = last_name
            user.phone = phone
            user.is_phone_verified = bool(phone)
            user.updated_at = _utc_now()
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                msg = f"Email {email!r} already belongs to another user"
                raise DuplicateRecordError(msg) from exc
            await session.refresh(user)
            return user

    async def mark_terminated(self, clerk_id: str, left_at: datetime | None = None) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.clerk_id) == clerk_id)
            result = await session.execute(stmt)
            user = result.scalars().first()
            if user is None:
                return None
            now = _utc_now()
            user.status = UserStatus.TERMINATED.value
            user.date_of_leaving = left_at or now
            user.updated_at = now
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def touch_last_login(self, user_id: str) -> None:
        async with AsyncSession(self._engine) as session:
            user = await session.get(User, user_id)
            if user is None:
                return
            user.last_login_at = _utc_now()
            session.add(user)
            await session.commit()

    async def get_profile(self, clerk_id: str) -> UserProfileRecord | None:
        """Load a user with its role, organization, department and designation."""
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.clerk_id) == clerk_id)
            result = await session.execute(stmt)
            user = result.scalars().first()
            if user is None:
                return None

            role = await session.get(Role, user.role_id)
            organization = await session.get(Organization, user.organization_id)
            if role is None or organization is None:
                logger.error(
                    "user_profile_dangling_reference",
                    user_id=user.id,
                    role_found=role is not None,
                    org_found=organization is not None,
                )
                return None

            department = (
                await session.get(Department, user.department_id) if user.department_id else None
            )
            designation = (
                await session.get(Designation, user.designation_id)
                if user.designation_id
                else None
            )
            return UserProfileRecord(
                user=user,
                role=role,
                organization=organization,
                department=department,
                designation=designation,
            )

    async def list_for_organization(self, organization_id: str) -> list[User]:
        async with AsyncSession(self._engine) as session:
            stmt = scoped_select(User, organization_id).order_by(col(User.employee_code))
            result = await session.execute(stmt)
            return list(result.scalars().all())
