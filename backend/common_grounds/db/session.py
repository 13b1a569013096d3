"""Database engine and session management."""

import ssl
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from common_grounds.config import Settings
from common_grounds.db import models  # noqa: F401 - Import models to register them
from common_grounds.db.base import Base


class Database:
    """
    Owns the async engine and session factory.

    Constructed once at startup and disposed on shutdown; request handlers
    receive sessions through the `get_db` dependency.
    """

    def __init__(self, url: str, *, echo: bool = False, requires_ssl: bool = False):
        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        if url.startswith("postgresql"):
            engine_kwargs.update(pool_size=5, max_overflow=10)
            if requires_ssl:
                engine_kwargs["connect_args"] = {"ssl": ssl.create_default_context()}

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.debug,
            requires_ssl=settings.database_requires_ssl,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create tables directly from metadata (tests and local development)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
