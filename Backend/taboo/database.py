"""Connection pool and transactional sessions for the remote word-set store.

The engine owns the only shared mutable resource in the core (the pool), so it
is built once at startup, handed to whoever needs it, and disposed explicitly.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import make_url, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from taboo.config import Settings
from taboo.models import Base

logger = logging.getLogger(__name__)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build a bounded-pool engine: at most DB_POOL_SIZE + DB_MAX_OVERFLOW
    connections, waiting DB_POOL_TIMEOUT seconds for one before failing."""
    connect_args = {}
    if make_url(settings.DATABASE_URL).get_backend_name() == "postgresql":
        # asyncpg's own connect timeout, so an unreachable host fails fast too
        connect_args["timeout"] = settings.DB_POOL_TIMEOUT

    return create_async_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


class Database:
    """Engine plus session factory with an explicit lifetime."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(create_engine_from_settings(settings))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """One session, one connection, one transaction.

        Commits on normal exit, rolls back on any exception, and returns the
        connection to the pool on every exit path.
        """
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database pool disposed")
