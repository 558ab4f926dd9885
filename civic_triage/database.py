import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from civic_triage.config import settings
from civic_triage.exceptions import PersistenceError
from civic_triage.models import ComplaintRecord  # noqa: F401  registers the complaints table
from civic_triage.logging_config import logger


class DatabaseManager:
    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.echo = settings.DATABASE_ECHO if echo is None else echo
        self.engine = None
        self.async_session_maker = None
        self._initialized = False

    async def initialize(self):
        """Initialize database connection and create tables if needed"""
        if self._initialized:
            return

        try:
            self.engine = create_async_engine(
                self.database_url,
                echo=self.echo,
                poolclass=NullPool,
                pool_pre_ping=True,
            )

            self.async_session_maker = async_sessionmaker(
                self.engine, class_=AsyncSession, expire_on_commit=False
            )

            # Create tables if they don't exist
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            self._initialized = True
            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database: {str(e)}")
            raise

    async def close(self):
        """Close database connections"""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session"""
        if not self._initialized:
            await self.initialize()

        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def health_check(self) -> bool:
        """Check if database is accessible"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(f"Database health check failed: {str(e)}")
            return False


# Global database manager instance
db_manager = DatabaseManager()


async def init_database(manager: DatabaseManager = db_manager) -> None:
    """
    Create the complaints table and verify connectivity

    Raises:
        PersistenceError: If the database cannot be reached after setup
    """
    logger.info("Initializing database...")
    await manager.initialize()
    if not await manager.health_check():
        raise PersistenceError(f"Database at {manager.database_url} failed its health check")
    logger.info("Database initialization completed successfully")


async def _init_and_close() -> None:
    try:
        await init_database()
    finally:
        await db_manager.close()


if __name__ == "__main__":
    asyncio.run(_init_and_close())
