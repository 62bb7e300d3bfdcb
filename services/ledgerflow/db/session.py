"""
Database session management for Ledgerflow API server.

Provides async SQLAlchemy session factory for database access.
Single engine; one session per request, committed on success and rolled
back on any exception.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ledgerflow.config import settings
from ledgerflow.errors import ConflictError
from ledgerflow.logging_config import get_logger

logger = get_logger(__name__)

# Primary engine - created lazily in init_db()
_engine = None
_async_session_factory = None


async def init_db() -> None:
    """Initialize database connection pool."""
    global _engine, _async_session_factory  # noqa: PLW0603
    logger.info("Initializing database connection")

    _engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

    _async_session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with _engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection established")


async def close_db() -> None:
    """Close database connection pool."""
    global _engine, _async_session_factory  # noqa: PLW0603
    if _engine is not None:
        logger.info("Closing database connection pool")
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession]:
    """
    Dependency that provides a read-write database session.

    Usage:
        @router.post("/workspaces")
        async def create_workspace(db: AsyncSession = Depends(get_db)):
            ...
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized - call init_db() first")

    async with _async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """Context manager for non-dependency database access (scripts, startup)."""
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized - call init_db() first")

    async with _async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def flush_or_conflict(db: AsyncSession, detail: str) -> None:
    """Flush pending writes, translating a unique-constraint violation to CONFLICT.

    Check-then-insert sequences leave a window between the existence check
    and the insert; the database constraint is the backstop.
    """
    try:
        await db.flush()
    except IntegrityError as e:
        logger.info("Unique constraint violation", detail=detail, error=str(e.orig))
        raise ConflictError(detail) from None


async def get_db_health() -> bool:
    """Check database health for the readiness endpoint."""
    try:
        if _engine is None:
            return False
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False
