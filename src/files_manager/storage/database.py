"""Database connection management with provider-agnostic factory pattern."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from files_manager.config import (
    PostgresStorageConfig,
    SqliteStorageConfig,
    StorageBackendConfig,
)
from files_manager.storage.models import Base


class DatabaseManager:
    """Manages database connections and sessions.

    Provider-agnostic: works with SQLite, PostgreSQL, or any SQLAlchemy-supported backend.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_tables(self) -> None:
        """Create all tables defined in models."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables. Use with caution."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session with automatic cleanup."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Close the database engine."""
        await self._engine.dispose()


def _create_engine_for_sqlite(config: SqliteStorageConfig) -> AsyncEngine:
    """Create SQLAlchemy engine for SQLite."""
    url = f"sqlite+aiosqlite:///{config.db_path}"
    return create_async_engine(
        url,
        echo=False,
        connect_args={"check_same_thread": False},
    )


def _create_engine_for_postgres(config: PostgresStorageConfig) -> AsyncEngine:
    """Create SQLAlchemy engine for PostgreSQL."""
    return create_async_engine(
        config.connection_url,
        echo=False,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_pre_ping=True,
    )


def create_engine_from_config(config: StorageBackendConfig) -> AsyncEngine:
    """Create the engine matching the configured backend type."""
    match config:
        case SqliteStorageConfig():
            return _create_engine_for_sqlite(config)
        case PostgresStorageConfig():
            return _create_engine_for_postgres(config)
        case _:
            raise ValueError(f"Unknown storage backend type: {type(config)}")


async def init_database(config: StorageBackendConfig) -> DatabaseManager:
    """Create a DatabaseManager for the backend and ensure the schema exists."""
    db_manager = DatabaseManager(create_engine_from_config(config))
    await db_manager.create_tables()
    return db_manager
