"""Tenant-scoped query construction.

Repositories build list queries over tenant-owned tables through
``scoped_select`` so the organization filter is part of the statement from
the start instead of something each caller has to remember to add.
"""

from __future__ import annotations

from typing import Any, TypeVar

from sqlmodel import SQLModel, col, select
from sqlmodel.sql.expression import SelectOfScalar

ModelT = TypeVar("ModelT", bound=SQLModel)


def scoped_select(model: type[ModelT], organization_id: str) -> SelectOfScalar[ModelT]:
    """Return ``SELECT model WHERE model.organization_id = :organization_id``."""
    if not organization_id:
        msg = "organization_id is required for tenant-scoped queries"
        raise ValueError(msg)
    column: Any = getattr(model, "organization_id", None)
    if column is None:
        msg = f"{model.__name__} is not tenant-scoped"
        raise TypeError(msg)
    return select(model).where(col(column) == organization_id)
