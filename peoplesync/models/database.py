"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from peoplesync.types import EmploymentType, UserStatus


def _utc_now() -> datetime:
    """Return current UTC time, timezone-aware for TIMESTAMP WITH TIME ZONE columns."""
    return datetime.now(UTC)


def _timestamp(*, nullable: bool = False) -> Any:
    if nullable:
        return Field(default=None, sa_type=DateTime(timezone=True))
    return Field(default_factory=_utc_now, sa_type=DateTime(timezone=True))


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Tenant root
# ---------------------------------------------------------------------------


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str
    display_name: str
    email: str = Field(unique=True)
    phone: str | None = None
    country: str = Field(default="India")
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


# ---------------------------------------------------------------------------
# Tenant-scoped identity models
# ---------------------------------------------------------------------------


class Role(SQLModel, table=True):
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_roles_org_name"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    name: str
    display_name: str
    description: str | None = None
    level: int = Field(default=0)
    is_system: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class Department(SQLModel, table=True):
    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_departments_org_code"),
    )

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    name: str
    code: str
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class Designation(SQLModel, table=True):
    __tablename__ = "designations"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_designations_org_code"),
    )

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    name: str
    code: str
    level: int = Field(default=0)
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("organization_id", "employee_code", name="uq_users_org_employee_code"),
        UniqueConstraint("organization_id", "email", name="uq_users_org_email"),
    )

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    clerk_id: str = Field(unique=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    role_id: str = Field(foreign_key="roles.id")
    department_id: str | None = Field(default=None, foreign_key="departments.id")
    designation_id: str | None = Field(default=None, foreign_key="designations.id")
    employee_code: str = Field(unique=True)
    email: str = Field(unique=True)
    phone: str | None = None
    first_name: str
    last_name: str = ""
    display_name: str | None = None
    avatar: str | None = None
    status: str = Field(default=UserStatus.ACTIVE.value, index=True)
    employment_type: str = Field(default=EmploymentType.FULL_TIME.value)
    date_of_joining: datetime = _timestamp()
    date_of_leaving: datetime | None = _timestamp(nullable=True)
    is_email_verified: bool = Field(default=False)
    is_phone_verified: bool = Field(default=False)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()
    last_login_at: datetime | None = _timestamp(nullable=True)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    org_id: str = Field(index=True)
    user_id: str = ""
    action: str = Field(index=True)
    resource_type: str = ""
    resource_id: str = ""
    details_json: str = "{}"
    ip_address: str = ""
    request_id: str = ""
    created_at: datetime = _timestamp()
