"""API request/response schemas for FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from peoplesync.models.database import User
    from peoplesync.storage.repositories.users import UserProfileRecord


class NamedRef(BaseModel):
    id: str
    name: str


class RoleRef(BaseModel):
    id: str
    name: str
    display_name: str


class OrganizationRef(BaseModel):
    id: str
    name: str
    display_name: str


class PublicUserProfile(BaseModel):
    id: str
    clerk_id: str
    employee_code: str
    email: str
    first_name: str
    last_name: str
    display_name: str | None = None
    avatar: str | None = None
    phone: str | None = None
    status: str
    employment_type: str
    role: RoleRef
    organization: OrganizationRef
    department: NamedRef | None = None
    designation: NamedRef | None = None
    date_of_joining: datetime
    created_at: datetime

    @classmethod
    def from_record(cls, record: UserProfileRecord) -> PublicUserProfile:
        user = record.user
        return cls(
            id=user.id,
            clerk_id=user.clerk_id,
            employee_code=user.employee_code,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            display_name=user.display_name,
            avatar=user.avatar,
            phone=user.phone,
            status=user.status,
            employment_type=user.employment_type,
            role=RoleRef(
                id=record.role.id,
                name=record.role.name,
                display_name=record.role.display_name,
            ),
            organization=OrganizationRef(
                id=record.organization.id,
                name=record.organization.name,
                display_name=record.organization.display_name,
            ),
            department=(
                NamedRef(id=record.department.id, name=record.department.name)
                if record.department
                else None
            ),
            designation=(
                NamedRef(id=record.designation.id, name=record.designation.name)
                if record.designation
                else None
            ),
            date_of_joining=user.date_of_joining,
            created_at=user.created_at,
        )


class ExchangeResponse(BaseModel):
    token: str
    expires_at: datetime
    user: PublicUserProfile


class UserSummary(BaseModel):
    id: str
    employee_code: str
    email: str
    first_name: str
    last_name: str
    status: str

    @classmethod
    def from_user(cls, user: User) -> UserSummary:
        return cls(
            id=user.id,
            employee_code=user.employee_code,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            status=user.status,
        )


class WebhookAck(BaseModel):
    status: str = "ok"
