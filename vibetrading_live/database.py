"""
Strategy Store Connection
Async PostgreSQL engine that backs the strategy and order tables.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vibetrading_live.config import DatabaseSettings, get_settings
from vibetrading_live.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class PostgresDatabase:
    """
    One async engine per process, injected into the repository.

    Every `session()` block is a unit of work: it commits on clean exit
    and rolls back when the block raises.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None) -> None:
        self.settings = settings or get_settings().database
        self.engine = create_async_engine(
            self.settings.url,
            pool_size=self.settings.pool_size,
            max_overflow=self.settings.max_overflow,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            await session.commit()

    async def health_check(self) -> bool:
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Strategy store at {self.settings.host}:{self.settings.port} unreachable: {e}")
            return False
        return True

    async def require_connection(self) -> None:
        """Fail startup early instead of on the first state save."""
        if not await self.health_check():
            await self.close()
            raise PersistenceError(f"Cannot reach PostgreSQL database {self.settings.db}")

    async def close(self) -> None:
        await self.engine.dispose()
