"""User provisioning from identity-provider events.

Turns Clerk ``user.created`` / ``user.updated`` / ``user.deleted`` payloads
into local user rows. Every operation is idempotent so provider retries and
out-of-order deliveries are harmless:

* a second ``user.created`` for the same subject returns the existing row,
  including when two deliveries race on the insert;
* ``user.updated`` for an unknown subject is dropped;
* ``user.deleted`` is a soft status transition.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from peoplesync.exceptions import (
    CodeGenerationExhaustedError,
    DuplicateRecordError,
    MalformedEventError,
    MissingEmailError,
    MissingTenantContextError,
    UnknownOrInactiveOrganizationError,
)
from peoplesync.models.database import User, _utc_now
from peoplesync.services.employee_codes import generate_employee_code
from peoplesync.types import DEFAULT_ROLE_NAME, UserStatus

if TYPE_CHECKING:
    from datetime import datetime

    from peoplesync.audit.logger import AuditLogger
    from peoplesync.models.database import Role
    from peoplesync.storage.repositories.directory import DatabaseTenantDirectory
    from peoplesync.storage.repositories.roles import DatabaseRoleRepository
    from peoplesync.storage.repositories.users import DatabaseUserRepository

logger = structlog.get_logger(__name__)

DEFAULT_FIRST_NAME = "User"
DEFAULT_MAX_CODE_ATTEMPTS = 5

_METADATA_ORG_KEYS = ("organizationId", "organization_id")


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _extract_primary_email(data: Mapping[str, Any]) -> str | None:
    """Primary address if it can be found, else the first one listed."""
    addresses = [a for a in data.get("email_addresses") or [] if isinstance(a, Mapping)]
    primary_id = data.get("primary_email_address_id")
    for addr in addresses:
        if primary_id and addr.get("id") == primary_id:
            email = _clean(addr.get("email_address"))
            if email:
                return email
    for addr in addresses:
        email = _clean(addr.get("email_address"))
        if email:
            return email
    return None


def _extract_phone(data: Mapping[str, Any]) -> str | None:
    for number in data.get("phone_numbers") or []:
        if isinstance(number, Mapping):
            phone = _clean(number.get("phone_number"))
            if phone:
                return phone
    return None


def _extract_organization_id(data: Mapping[str, Any]) -> str | None:
    metadata = data.get("public_metadata")
    if not isinstance(metadata, Mapping):
        return None
    for key in _METADATA_ORG_KEYS:
        org_id = _clean(metadata.get(key))
        if org_id:
            return org_id
    return None


@dataclass(frozen=True, slots=True)
class ExternalUser:
    """The handful of fields provisioning needs from a Clerk user payload."""

    subject_id: str
    email: str | None
    first_name: str
    last_name: str
    phone: str | None
    organization_id: str | None

    @classmethod
    def from_event(cls, data: Mapping[str, Any]) -> ExternalUser:
        subject_id = _clean(data.get("id"))
        if subject_id is None:
            msg = "Identity event has no subject id"
            raise MalformedEventError(msg)
        return cls(
            subject_id=subject_id,
            email=_extract_primary_email(data),
            first_name=_clean(data.get("first_name")) or DEFAULT_FIRST_NAME,
            last_name=_clean(data.get("last_name")) or "",
            phone=_extract_phone(data),
            organization_id=_extract_organization_id(data),
        )


class ProvisioningEngine:
    """Idempotent state transitions from identity events to local users."""

    def __init__(
        self,
        users: DatabaseUserRepository,
        roles: DatabaseRoleRepository,
        directory: DatabaseTenantDirectory,
        audit: AuditLogger | None = None,
        code_factory: Callable[[], str] = generate_employee_code,
        max_code_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._users = users
        self._roles = roles
        self._directory = directory
        self._audit = audit
        self._code_factory = code_factory
        self._max_code_attempts = max(1, max_code_attempts)
        self._clock = clock

    async def on_user_created(self, external: ExternalUser) -> User:
        existing = await self._users.get_by_clerk_id(external.subject_id)
        if existing is not None:
            logger.info("user_already_provisioned", clerk_id=external.subject_id)
            return existing

        if not external.email:
            logger.error("provisioning_missing_email", clerk_id=external.subject_id)
            msg = f"No email address for {external.subject_id}"
            raise MissingEmailError(msg)

        if not external.organization_id:
            logger.error("provisioning_missing_tenant_context", clerk_id=external.subject_id)
            msg = f"No organizationId in public metadata for {external.subject_id}"
            raise MissingTenantContextError(msg)

        organization = await self._directory.get_active_organization(external.organization_id)
        if organization is None:
            logger.error(
                "provisioning_unknown_or_inactive_org",
                clerk_id=external.subject_id,
                org_id=external.organization_id,
            )
            msg = f"Organization {external.organization_id} not found or inactive"
            raise UnknownOrInactiveOrganizationError(msg)

        role = await self._resolve_default_role(organization.id)
        user, created = await self._insert_user(external, organization.id, role)

        if created and self._audit is not None:
            await self._audit.log(
                org_id=organization.id,
                user_id=user.id,
                action="user.provisioned",
                resource_type="user",
                resource_id=user.id,
                details={"clerk_id": user.clerk_id, "employee_code": user.employee_code},
            )
        return user

    async def on_user_updated(self, external: ExternalUser) -> User | None:
        if await self._users.get_by_clerk_id(external.subject_id) is None:
            logger.info("user_update_skipped_not_provisioned", clerk_id=external.subject_id)
            return None
        if not external.email:
            logger.error("user_update_missing_email", clerk_id=external.subject_id)
            msg = f"No email address for {external.subject_id}"
            raise MissingEmailError(msg)

        user = await self._users.update_profile(
            external.subject_id,
            email=external.email,
            first_name=external.first_name,
            last_name=external.last_name,
            phone=external.phone,
        )
        if user is not None:
            logger.info("user_profile_updated", user_id=user.id, clerk_id=external.subject_id)
        return user

    async def on_user_deleted(self, subject_id: str) -> User | None:
        user = await self._users.mark_terminated(subject_id, left_at=self._clock())
        if user is None:
            logger.info("user_delete_skipped_not_provisioned", clerk_id=subject_id)
            return None

        logger.info("user_terminated", user_id=user.id, clerk_id=subject_id)
        if self._audit is not None:
            await self._audit.log(
                org_id=user.organization_id,
                user_id=user.id,
                action="user.terminated",
                resource_type="user",
                resource_id=user.id,
                details={"clerk_id": subject_id},
            )
        return user

    async def _resolve_default_role(self, organization_id: str) -> Role:
        role = await self._roles.get_by_name(organization_id, DEFAULT_ROLE_NAME)
        if role is not None:
            return role

        logger.info("default_role_missing", org_id=organization_id)
        try:
            return await self._roles.create(
                organization_id=organization_id,
                name=DEFAULT_ROLE_NAME,
                display_name="Employee",
                description="Default employee role",
                level=10,
                is_system=True,
            )
        except DuplicateRecordError:
            # Created concurrently, or present but deactivated
            role = await self._roles.get_by_name(
                organization_id, DEFAULT_ROLE_NAME, active_only=False
            )
            if role is None:
                raise
            return role

    async def _insert_user(
        self, external: ExternalUser, organization_id: str, role: Role
    ) -> tuple[User, bool]:
        """Insert the user, retrying on employee-code collisions.

        Returns ``(user, created)``; ``created`` is False when a concurrent
        delivery inserted the same subject first.
        """
        for attempt in range(1, self._max_code_attempts + 1):
            code = self._code_factory()
            if await self._users.employee_code_exists(code):
                logger.info("employee_code_collision", employee_code=code, attempt=attempt)
                continue

            now = self._clock()
            candidate = User(
                clerk_id=external.subject_id,
                organization_id=organization_id,
                role_id=role.id,
                employee_code=code,
                email=external.email or "",
                first_name=external.first_name,
                last_name=external.last_name,
                phone=external.phone,
                status=UserStatus.ACTIVE.value,
                date_of_joining=now,
                is_email_verified=True,
                is_phone_verified=bool(external.phone),
                created_at=now,
                updated_at=now,
            )
            try:
                user = await self._users.create(candidate)
            except DuplicateRecordError:
                existing = await self._users.get_by_clerk_id(external.subject_id)
                if existing is not None:
                    logger.info("user_provision_race_resolved", clerk_id=external.subject_id)
                    return existing, False
                if await self._users.employee_code_exists(code):
                    logger.info(
                        "employee_code_collision_on_insert", employee_code=code, attempt=attempt
                    )
                    continue
                raise

            logger.info(
                "user_provisioned",
                user_id=user.id,
                clerk_id=external.subject_id,
                org_id=organization_id,
                employee_code=code,
            )
            return user, True

        logger.error(
            "employee_code_generation_exhausted",
            clerk_id=external.subject_id,
            attempts=self._max_code_attempts,
        )
        msg = f"No unique employee code after {self._max_code_attempts} attempts"
        raise CodeGenerationExhaustedError(msg)
