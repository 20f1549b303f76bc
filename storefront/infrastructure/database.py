"""Database configuration and session management.

Provides the declarative base and a Database object that owns the
async engine and session factory. One Database is built at process
start and handed to repositories and services.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for models."""

    pass


class Database:
    """Async engine plus session factory."""

    def __init__(self, url: str, echo: bool = False, **engine_kwargs: Any) -> None:
        """Initialize database.

        Args:
            url: SQLAlchemy database URL.
            echo: Log emitted SQL.
            engine_kwargs: Extra arguments for create_async_engine.
        """
        if url.startswith("postgresql"):
            engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """Open a session wrapped in one transaction.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.

        Yields:
            AsyncSession for database operations.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create all tables (development and tests)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self.engine.dispose()
