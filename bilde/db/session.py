"""Async engine and session factory for the SQL metadata index."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bilde.db.base import Base

if TYPE_CHECKING:
    from bilde.config import DatabaseConfig


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an engine; pool sizing only applies to server databases."""
    kwargs: dict = {"echo": config.echo, "pool_pre_ping": config.pool_pre_ping}
    if not config.url.startswith("sqlite"):
        kwargs.update(
            pool_size=config.pool_size,
            max_overflow=config.pool_overflow,
            pool_timeout=config.pool_timeout,
        )
    return create_async_engine(config.url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the index tables directly, bypassing migrations."""
    # Import models so they register with Base.metadata
    from bilde.db.models import ImageRecord  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
