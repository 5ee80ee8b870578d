"""Async SQLAlchemy engine, session factory and schema management."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from helm_campaign.core.config import DatabaseSettings, settings
from helm_campaign.core.exceptions import DatabaseError
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_engine_from_settings(db_settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """Create an async engine for the configured database URL.

    Pool options only apply to server databases; SQLite URLs get the
    driver defaults.
    """
    db_settings = db_settings or settings.db
    url = db_settings.connection_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=db_settings.echo, future=True)

    return create_async_engine(
        url,
        pool_size=db_settings.pool_size,
        max_overflow=db_settings.max_overflow,
        echo=db_settings.echo,
        future=True,
        # Disable prepared statement cache for PgBouncer compatibility
        connect_args={"statement_cache_size": 0},
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class DatabaseClient:
    """Database client with connection and schema management."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connected = False

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._connected = True
            LOGGER.info("Database connection successful")
            return True
        except Exception as e:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise DatabaseError(f"Database connection failed: {e}", e) from e

    async def disconnect(self) -> None:
        try:
            await self.engine.dispose()
            self._connected = False
            LOGGER.info("Database connection closed")
        except Exception as e:
            LOGGER.error(
                "Error closing database connection",
                exc_info=True,
                extra={"error": str(e)}
            )

    async def create_tables(self) -> None:
        """Create missing tables without touching existing ones.

        Production schemas are managed by Alembic; this is for local runs
        and tests.
        """
        # Registers the tables on Base.metadata.
        from helm_campaign.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            LOGGER.info("Database tables created/verified successfully")
        except Exception as e:
            LOGGER.error(
                "Failed to create database tables",
                exc_info=True,
                extra={"error": str(e)}
            )
            raise DatabaseError(f"Failed to create database tables: {e}", e) from e

    async def drop_tables(self) -> None:
        """Drop all database tables.

        WARNING: This will delete all data!
        """
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            LOGGER.warning("All database tables dropped")
        except Exception as e:
            LOGGER.error(
                "Failed to drop database tables",
                exc_info=True,
                extra={"error": str(e)}
            )
            raise DatabaseError(f"Failed to drop database tables: {e}", e) from e

    async def health_check(self) -> dict:
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
            self._connected = True
            return {
                "status": "healthy",
                "connected": True,
                "dialect": self.engine.dialect.name,
                "latency_test": "passed" if val == 1 else "failed",
            }
        except Exception as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
            }

    @property
    def is_connected(self) -> bool:
        return self._connected


async def init_database(engine: AsyncEngine, create_tables: bool = True) -> DatabaseClient:
    """Connect and optionally create missing tables.

    Args:
        engine: Engine to initialize
        create_tables: Whether to create tables that don't exist yet

    Raises:
        DatabaseError: If the database cannot be reached or the schema cannot be created
    """
    client = DatabaseClient(engine)
    try:
        LOGGER.info("Initializing database connection...")
        await client.connect()
        if create_tables:
            await client.create_tables()
        LOGGER.info("Database initialization completed")
        return client
    except Exception as e:
        LOGGER.error(
            "Database initialization failed",
            exc_info=True,
            extra={"error": str(e)}
        )
        raise
