"""Database engine and session management."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from ..core.config import settings

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./bpm_engine.db"


def build_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(
        database_url or settings.database_url or DEFAULT_DATABASE_URL,
        echo=settings.debug if echo is None else echo,
        future=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    from . import models  # noqa: F401  (registers the tables)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

