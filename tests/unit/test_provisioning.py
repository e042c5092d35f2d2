"""Unit tests for the provisioning engine against an in-memory database."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from peoplesync.audit.logger import AuditLogger
from peoplesync.exceptions import (
    CodeGenerationExhaustedError,
    MalformedEventError,
    MissingEmailError,
    MissingTenantContextError,
    UnknownOrInactiveOrganizationError,
)
from peoplesync.models.database import AuditLog, Role, User
from peoplesync.services.employee_codes import EMPLOYEE_CODE_PATTERN
from peoplesync.services.provisioning import ExternalUser, ProvisioningEngine
from peoplesync.storage.repositories.directory import DatabaseTenantDirectory
from peoplesync.storage.repositories.roles import DatabaseRoleRepository
from peoplesync.storage.repositories.users import DatabaseUserRepository
from peoplesync.types import UserStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def _engine(async_engine: AsyncEngine, **kwargs: Any) -> ProvisioningEngine:
    return ProvisioningEngine(
        users=DatabaseUserRepository(async_engine),
        roles=DatabaseRoleRepository(async_engine),
        directory=DatabaseTenantDirectory(async_engine),
        audit=AuditLogger(async_engine),
        **kwargs,
    )


def _codes(*values: str) -> Callable[[], str]:
    it = iter(values)
    return lambda: next(it)


async def _all(async_engine: AsyncEngine, model: type) -> list[Any]:
    async with AsyncSession(async_engine) as session:
        result = await session.execute(select(model))
        return list(result.scalars().all())


async def _actions(async_engine: AsyncEngine) -> list[str]:
    return [entry.action for entry in await _all(async_engine, AuditLog)]


@pytest.mark.unit
class TestExternalUser:
    def test_from_event(self, make_user_data) -> None:
        external = ExternalUser.from_event(make_user_data(phone="+911234567890"))
        assert external.subject_id == "user_jane"
        assert external.email == "jane@acme.test"
        assert external.first_name == "Jane"
        assert external.last_name == "Doe"
        assert external.phone == "+911234567890"
        assert external.organization_id == "org_1"

    def test_primary_email_preferred(self, make_user_data) -> None:
        data = make_user_data()
        data["email_addresses"] = [
            {"id": "idn_other", "email_address": "other@acme.test"},
            {"id": "idn_primary", "email_address": "primary@acme.test"},
        ]
        assert ExternalUser.from_event(data).email == "primary@acme.test"

    def test_first_email_when_primary_unknown(self, make_user_data) -> None:
        data = make_user_data()
        data["primary_email_address_id"] = "idn_missing"
        data["email_addresses"] = [
            {"id": "idn_a", "email_address": "first@acme.test"},
            {"id": "idn_b", "email_address": "second@acme.test"},
        ]
        assert ExternalUser.from_event(data).email == "first@acme.test"

    def test_name_defaults(self, make_user_data) -> None:
        external = ExternalUser.from_event(make_user_data(first_name=None, last_name=None))
        assert external.first_name == "User"
        assert external.last_name == ""

    def test_snake_case_metadata_key(self, make_user_data) -> None:
        data = make_user_data(organization_id=None)
        data["public_metadata"] = {"organization_id": "org_2"}
        assert ExternalUser.from_event(data).organization_id == "org_2"

    def test_missing_subject_id(self, make_user_data) -> None:
        data = make_user_data()
        del data["id"]
        with pytest.raises(MalformedEventError):
            ExternalUser.from_event(data)


@pytest.mark.unit
@pytest.mark.usefixtures("organizations")
class TestUserCreated:
    async def test_provisions_user(self, provisioning, make_user_data, async_engine) -> None:
        user = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))

        assert user.clerk_id == "user_jane"
        assert user.organization_id == "org_1"
        assert user.email == "jane@acme.test"
        assert user.status == UserStatus.ACTIVE
        assert user.is_email_verified is True
        assert user.is_phone_verified is False
        assert EMPLOYEE_CODE_PATTERN.match(user.employee_code)

        role = await DatabaseRoleRepository(async_engine).get_by_id(user.role_id)
        assert role is not None
        assert role.name == "employee"
        assert role.organization_id == "org_1"
        assert await _actions(async_engine) == ["user.provisioned"]

    async def test_phone_marks_phone_verified(self, provisioning, make_user_data) -> None:
        external = ExternalUser.from_event(make_user_data(phone="+911234567890"))
        user = await provisioning.on_user_created(external)
        assert user.phone == "+911234567890"
        assert user.is_phone_verified is True

    async def test_duplicate_delivery_is_idempotent(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        external = ExternalUser.from_event(make_user_data())
        first = await provisioning.on_user_created(external)
        second = await provisioning.on_user_created(external)

        assert second.id == first.id
        assert second.employee_code == first.employee_code
        assert len(await _all(async_engine, User)) == 1
        assert await _actions(async_engine) == ["user.provisioned"]

    async def test_default_role_created_once_per_org(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        first = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))
        second = await provisioning.on_user_created(
            ExternalUser.from_event(make_user_data(subject_id="user_bob", email="bob@acme.test"))
        )
        eve = make_user_data(
            subject_id="user_eve", email="eve@globex.test", organization_id="org_2"
        )
        other = await provisioning.on_user_created(ExternalUser.from_event(eve))

        assert first.role_id == second.role_id
        assert other.role_id != first.role_id
        roles = await _all(async_engine, Role)
        assert sorted(r.organization_id for r in roles) == ["org_1", "org_2"]
        assert all(r.is_system and r.level == 10 for r in roles)

    async def test_existing_role_reused(self, provisioning, make_user_data, async_engine) -> None:
        role = await DatabaseRoleRepository(async_engine).create(
            organization_id="org_1", name="employee", display_name="Staff"
        )
        user = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))
        assert user.role_id == role.id

    async def test_role_creation_race_reuses_winner(
        self, provisioning, make_user_data, async_engine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        roles = DatabaseRoleRepository(async_engine)
        winner = await roles.create(organization_id="org_1", name="employee", display_name="E")
        real_get_by_name = provisioning._roles.get_by_name
        calls: list[bool] = []

        async def lagging_get_by_name(org_id: str, name: str, *, active_only: bool = True):
            calls.append(active_only)
            if len(calls) == 1:
                return None
            return await real_get_by_name(org_id, name, active_only=active_only)

        monkeypatch.setattr(provisioning._roles, "get_by_name", lagging_get_by_name)
        user = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))

        assert user.role_id == winner.id
        assert calls == [True, False]
        assert len(await _all(async_engine, Role)) == 1

    async def test_inactive_default_role_is_reused(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        role = await DatabaseRoleRepository(async_engine).create(
            organization_id="org_1", name="employee", display_name="Employee"
        )
        async with AsyncSession(async_engine) as session:
            stored = await session.get(Role, role.id)
            assert stored is not None
            stored.is_active = False
            session.add(stored)
            await session.commit()

        user = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))
        assert user.role_id == role.id

    async def test_missing_email(self, provisioning, make_user_data, async_engine) -> None:
        with pytest.raises(MissingEmailError):
            await provisioning.on_user_created(ExternalUser.from_event(make_user_data(email=None)))
        assert await _all(async_engine, User) == []

    async def test_missing_tenant_context(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        external = ExternalUser.from_event(make_user_data(organization_id=None))
        with pytest.raises(MissingTenantContextError):
            await provisioning.on_user_created(external)
        assert await _all(async_engine, User) == []
        assert await _all(async_engine, Role) == []

    async def test_unknown_organization(self, provisioning, make_user_data, async_engine) -> None:
        external = ExternalUser.from_event(make_user_data(organization_id="org_missing"))
        with pytest.raises(UnknownOrInactiveOrganizationError):
            await provisioning.on_user_created(external)
        assert await _all(async_engine, User) == []

    async def test_inactive_organization(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        external = ExternalUser.from_event(make_user_data(organization_id="org_dormant"))
        with pytest.raises(UnknownOrInactiveOrganizationError):
            await provisioning.on_user_created(external)
        assert await _all(async_engine, User) == []

    async def test_employee_code_collision_retries(self, make_user_data, async_engine) -> None:
        engine = _engine(
            async_engine,
            code_factory=_codes("EMP000000001", "EMP000000001", "EMP000000002"),
        )
        first = await engine.on_user_created(ExternalUser.from_event(make_user_data()))
        second = await engine.on_user_created(
            ExternalUser.from_event(make_user_data(subject_id="user_bob", email="bob@acme.test"))
        )
        assert first.employee_code == "EMP000000001"
        assert second.employee_code == "EMP000000002"

    async def test_employee_code_exhaustion(self, make_user_data, async_engine) -> None:
        engine = _engine(async_engine, code_factory=lambda: "EMP000000001", max_code_attempts=3)
        await engine.on_user_created(ExternalUser.from_event(make_user_data()))

        with pytest.raises(CodeGenerationExhaustedError):
            await engine.on_user_created(
                ExternalUser.from_event(
                    make_user_data(subject_id="user_bob", email="bob@acme.test")
                )
            )
        assert len(await _all(async_engine, User)) == 1

    async def test_concurrent_insert_returns_existing(
        self, provisioning, make_user_data, async_engine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        external = ExternalUser.from_event(make_user_data())
        winner = await provisioning.on_user_created(external)

        real_get_by_clerk_id = provisioning._users.get_by_clerk_id
        calls = 0

        async def lagging_get_by_clerk_id(clerk_id: str):
            nonlocal calls
            calls += 1
            if calls == 1:
                return None
            return await real_get_by_clerk_id(clerk_id)

        monkeypatch.setattr(provisioning._users, "get_by_clerk_id", lagging_get_by_clerk_id)
        loser = await provisioning.on_user_created(external)

        assert loser.id == winner.id
        assert len(await _all(async_engine, User)) == 1
        assert await _actions(async_engine) == ["user.provisioned"]


@pytest.mark.unit
@pytest.mark.usefixtures("organizations")
class TestUserUpdated:
    async def test_updates_profile_fields(self, provisioning, make_user_data) -> None:
        created = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))
        data = make_user_data(
            email="jane.doe@acme.test", first_name="Janet", last_name="D", phone="+9100"
        )
        # Organization in metadata is ignored on update
        data["public_metadata"] = {"organizationId": "org_2"}

        updated = await provisioning.on_user_updated(ExternalUser.from_event(data))

        assert updated is not None
        assert updated.id == created.id
        assert updated.email == "jane.doe@acme.test"
        assert updated.first_name == "Janet"
        assert updated.last_name == "D"
        assert updated.phone == "+9100"
        assert updated.is_phone_verified is True
        assert updated.organization_id == "org_1"
        assert updated.role_id == created.role_id
        assert updated.employee_code == created.employee_code

    async def test_unknown_user_is_noop(self, provisioning, make_user_data, async_engine) -> None:
        result = await provisioning.on_user_updated(ExternalUser.from_event(make_user_data()))
        assert result is None
        assert await _all(async_engine, User) == []

    async def test_missing_email_rejected(self, provisioning, make_user_data) -> None:
        await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))
        with pytest.raises(MissingEmailError):
            await provisioning.on_user_updated(ExternalUser.from_event(make_user_data(email=None)))

    async def test_removing_phone_clears_verification(self, provisioning, make_user_data) -> None:
        await provisioning.on_user_created(
            ExternalUser.from_event(make_user_data(phone="+911234567890"))
        )
        updated = await provisioning.on_user_updated(ExternalUser.from_event(make_user_data()))
        assert updated is not None
        assert updated.phone is None
        assert updated.is_phone_verified is False


@pytest.mark.unit
@pytest.mark.usefixtures("organizations")
class TestUserDeleted:
    async def test_soft_deletes(self, provisioning, make_user_data, async_engine) -> None:
        created = await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))

        deleted = await provisioning.on_user_deleted("user_jane")

        assert deleted is not None
        assert deleted.id == created.id
        assert deleted.status == UserStatus.TERMINATED
        assert deleted.date_of_leaving is not None
        assert len(await _all(async_engine, User)) == 1
        assert await _actions(async_engine) == ["user.provisioned", "user.terminated"]

    async def test_repeated_delete_stays_terminated(self, provisioning, make_user_data) -> None:
        await provisioning.on_user_created(ExternalUser.from_event(make_user_data()))
        await provisioning.on_user_deleted("user_jane")
        again = await provisioning.on_user_deleted("user_jane")
        assert again is not None
        assert again.status == UserStatus.TERMINATED

    async def test_unknown_user_is_noop(self, provisioning, async_engine) -> None:
        assert await provisioning.on_user_deleted("user_ghost") is None
        assert await _actions(async_engine) == []

    async def test_created_after_delete_returns_terminated_row(
        self, provisioning, make_user_data
    ) -> None:
        external = ExternalUser.from_event(make_user_data())
        await provisioning.on_user_created(external)
        await provisioning.on_user_deleted("user_jane")

        replayed = await provisioning.on_user_created(external)
        assert replayed.status == UserStatus.TERMINATED


@pytest.mark.unit
@pytest.mark.usefixtures("organizations")
class TestProvisioningScenarios:
    async def test_first_user_of_active_org(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        data = make_user_data(subject_id="ext_42", email="a@x.com", organization_id="org_1")
        user = await provisioning.on_user_created(ExternalUser.from_event(data))

        assert user.status == UserStatus.ACTIVE
        assert EMPLOYEE_CODE_PATTERN.match(user.employee_code)
        role = await DatabaseRoleRepository(async_engine).get_by_id(user.role_id)
        assert role is not None
        assert role.name == "employee"
        assert [u.clerk_id for u in await _all(async_engine, User)] == ["ext_42"]

    async def test_provisioned_users_unique_per_org(
        self, provisioning, make_user_data, async_engine
    ) -> None:
        for i in range(5):
            data = make_user_data(subject_id=f"ext_{i}", email=f"u{i}@x.com")
            await provisioning.on_user_created(ExternalUser.from_event(data))

        users = await _all(async_engine, User)
        assert len({(u.organization_id, u.employee_code) for u in users}) == 5
        assert len({(u.organization_id, u.email) for u in users}) == 5
