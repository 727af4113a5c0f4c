"""
Database connection management with SQLAlchemy async engine.

Provides the process-wide async engine and session factory, the
``get_session`` unit-of-work context manager and the ``get_db`` FastAPI
dependency built on top of it.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from atelier.core.config import get_settings
from atelier.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _convert_database_url_to_async(url: str) -> str:
    """
    Convert a plain PostgreSQL URL to the asyncpg driver form.

    Args:
        url: Database connection URL

    Returns:
        Async-compatible database URL
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own transaction boundaries on SQLite connections.

    The sqlite3 driver issues its own BEGIN lazily, which breaks SAVEPOINT
    handling; disabling that and emitting BEGIN explicitly restores it.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create async SQLAlchemy engine.

    Args:
        database_url: Override for the configured URL

    Returns:
        Configured async SQLAlchemy engine
    """
    settings = get_settings()
    url = _convert_database_url_to_async(database_url or settings.database_url)

    engine_kwargs: Dict[str, Any] = {"echo": settings.debug}

    if url.startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
    elif settings.environment == "test":
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={
                "server_settings": {"application_name": settings.app_name},
                "command_timeout": 60,
                "timeout": 10,
            },
        )

    engine = create_async_engine(url, **engine_kwargs)

    if url.startswith("sqlite"):
        enable_sqlite_savepoints(engine)

    logger.info(
        "Database engine created",
        dialect=engine.dialect.name,
        environment=settings.environment,
    )

    return engine


def get_engine() -> AsyncEngine:
    """
    Get or create the global async database engine.

    Raises:
        RuntimeError: If engine initialization fails
    """
    global _engine

    if _engine is None:
        try:
            _engine = create_engine()
        except (SQLAlchemyError, ValueError) as e:
            logger.error(
                "Failed to create database engine",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RuntimeError(f"Database engine initialization failed: {e}") from e

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database session factory created")

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create async database session with automatic cleanup.

    Commits when the block exits cleanly and rolls back when it raises.

    Yields:
        Async database session
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database session injection.

    Example:
        @router.get("/orders/{order_id}")
        async def get_order(order_id: UUID, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session() as session:
        yield session


async def check_database_health() -> bool:
    """
    Check database connectivity.

    Returns:
        True if a trivial query succeeds, False otherwise
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError, RuntimeError) as e:
        logger.warning(
            "Database health check failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


async def close_database_connections() -> None:
    """
    Dispose of the engine during application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed and engine disposed")

    _engine = None
    _session_factory = None
