"""Async database engine factory."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Build the async engine the application owns for its lifetime."""
    options: dict[str, Any] = {"echo": echo}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10, pool_pre_ping=True, pool_recycle=3600)
    return create_async_engine(database_url, **options)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (for dev/testing only; use Alembic in production)."""
    import peoplesync.models.database  # noqa: F401  # registers tables on the metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
