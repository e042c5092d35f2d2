"""create identity and tenant tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel.sql.sqltypes
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STR = sqlmodel.sql.sqltypes.AutoString


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create organizations, roles, departments, designations, users and audit_logs."""
    op.create_table(
        "organizations",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("name", _STR(), nullable=False),
        sa.Column("display_name", _STR(), nullable=False),
        sa.Column("email", _STR(), nullable=False),
        sa.Column("phone", _STR(), nullable=True),
        sa.Column("country", _STR(), nullable=False, server_default="India"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "roles",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("organization_id", _STR(), nullable=False),
        sa.Column("name", _STR(), nullable=False),
        sa.Column("display_name", _STR(), nullable=False),
        sa.Column("description", _STR(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "name", name="uq_roles_org_name"),
    )
    op.create_index(op.f("ix_roles_organization_id"), "roles", ["organization_id"])

    for table in ("departments", "designations"):
        extra = (
            [sa.Column("level", sa.Integer(), nullable=False, server_default="0")]
            if table == "designations"
            else []
        )
        op.create_table(
            table,
            sa.Column("id", _STR(), nullable=False),
            sa.Column("organization_id", _STR(), nullable=False),
            sa.Column("name", _STR(), nullable=False),
            sa.Column("code", _STR(), nullable=False),
            *extra,
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("organization_id", "code", name=f"uq_{table}_org_code"),
        )
        op.create_index(op.f(f"ix_{table}_organization_id"), table, ["organization_id"])

    op.create_table(
        "users",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("clerk_id", _STR(), nullable=False),
        sa.Column("organization_id", _STR(), nullable=False),
        sa.Column("role_id", _STR(), nullable=False),
        sa.Column("department_id", _STR(), nullable=True),
        sa.Column("designation_id", _STR(), nullable=True),
        sa.Column("employee_code", _STR(), nullable=False),
        sa.Column("email", _STR(), nullable=False),
        sa.Column("phone", _STR(), nullable=True),
        sa.Column("first_name", _STR(), nullable=False),
        sa.Column("last_name", _STR(), nullable=False, server_default=""),
        sa.Column("display_name", _STR(), nullable=True),
        sa.Column("avatar", _STR(), nullable=True),
        sa.Column("status", _STR(), nullable=False, server_default="active"),
        sa.Column("employment_type", _STR(), nullable=False, server_default="full_time"),
        sa.Column("date_of_joining", sa.DateTime(timezone=True), nullable=False),
        sa.Column("date_of_leaving", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_phone_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"]),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"]),
        sa.ForeignKeyConstraint(["designation_id"], ["designations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("clerk_id"),
        sa.UniqueConstraint("employee_code"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("organization_id", "employee_code", name="uq_users_org_employee_code"),
        sa.UniqueConstraint("organization_id", "email", name="uq_users_org_email"),
    )
    op.create_index(op.f("ix_users_organization_id"), "users", ["organization_id"])
    op.create_index(op.f("ix_users_status"), "users", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("org_id", _STR(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False, server_default=""),
        sa.Column("action", _STR(), nullable=False),
        sa.Column("resource_type", _STR(), nullable=False, server_default=""),
        sa.Column("resource_id", _STR(), nullable=False, server_default=""),
        sa.Column("details_json", _STR(), nullable=False, server_default="{}"),
        sa.Column("ip_address", _STR(), nullable=False, server_default=""),
        sa.Column("request_id", _STR(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_logs_org_id"), "audit_logs", ["org_id"])
    op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"])


def downgrade() -> None:
    """Drop all identity and tenant tables."""
    op.drop_index(op.f("ix_audit_logs_action"), table_name="audit_logs")
    op.drop_index(op.f("ix_audit_logs_org_id"), table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index(op.f("ix_users_status"), table_name="users")
    op.drop_index(op.f("ix_users_organization_id"), table_name="users")
    op.drop_table("users")

    for table in ("designations", "departments"):
        op.drop_index(op.f(f"ix_{table}_organization_id"), table_name=table)
        op.drop_table(table)

    op.drop_index(op.f("ix_roles_organization_id"), table_name="roles")
    op.drop_table("roles")

    op.drop_table("organizations")
