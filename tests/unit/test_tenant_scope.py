import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from peoplesync.models.database import AuditLog, Role
from peoplesync.storage.repositories.roles import DatabaseRoleRepository
from peoplesync.storage.tenant_scope import scoped_select


@pytest.mark.unit
class TestScopedSelect:
    def test_requires_organization(self) -> None:
        with pytest.raises(ValueError, match="organization_id"):
            scoped_select(Role, "")

    def test_rejects_unscoped_model(self) -> None:
        with pytest.raises(TypeError, match="AuditLog"):
            scoped_select(AuditLog, "org_1")

    def test_filter_is_in_statement(self) -> None:
        compiled = str(scoped_select(Role, "org_1").compile())
        assert "roles.organization_id = " in compiled

    @pytest.mark.usefixtures("organizations")
    async def test_only_returns_own_rows(self, async_engine) -> None:
        roles = DatabaseRoleRepository(async_engine)
        await roles.create(organization_id="org_1", name="employee", display_name="Employee")
        await roles.create(organization_id="org_1", name="manager", display_name="Manager")
        await roles.create(organization_id="org_2", name="employee", display_name="Employee")

        async with AsyncSession(async_engine) as session:
            result = await session.execute(scoped_select(Role, "org_1"))
            rows = list(result.scalars().all())

        assert sorted(r.name for r in rows) == ["employee", "manager"]
        assert {r.organization_id for r in rows} == {"org_1"}
