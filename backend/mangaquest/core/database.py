"""Database configuration and setup.

Handles SQLite async database setup:
- WAL mode for concurrent reads while a batch run writes
- Session factory for dependency injection
- Table creation at startup
- Retry logic for database locks
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mangaquest.core.metrics import db_retries_failed_total, db_retry_attempts_total

logger = structlog.get_logger("mangaquest.database")

T = TypeVar("T")


def create_database_engine(
    database_file: Path | str,
    echo: bool = False,
) -> AsyncEngine:
    """Create and configure the async SQLite engine.

    Args:
        database_file: Path to the SQLite database file.
        echo: If True, log all SQL statements.

    Returns:
        Configured AsyncEngine instance.
    """
    database_url = f"sqlite+aiosqlite:///{database_file}"

    engine = create_async_engine(
        database_url,
        echo=echo,
        connect_args={"timeout": 30.0},  # seconds to wait on a locked database
        pool_pre_ping=True,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn: Any, connection_record: Any) -> None:
        """Enable WAL mode and foreign keys."""
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    logger.info("Database engine created", database_file=str(database_file), echo=echo)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[SQLModelAsyncSession]:
    """Create a session factory producing SQLModel async sessions.

    expire_on_commit=False keeps loaded rows usable after commit without lazy loads.
    """
    return async_sessionmaker(
        engine,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,
    )


async def init_database(engine: AsyncEngine) -> None:
    """Create all tables registered on the SQLModel metadata (idempotent)."""
    # Import models so they register on the metadata
    import mangaquest.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    logger.info("Database schema ensured", tables=sorted(SQLModel.metadata.tables))


async def retry_db_operation(
    operation: Callable[[], Awaitable[T]],
    session: SQLModelAsyncSession | None = None,
    max_retries: int = 5,
    retry_delay: float = 0.1,
    operation_type: str = "unknown",
) -> T:
    """Retry a database operation on SQLite lock errors with exponential backoff.

    Args:
        operation: Callable returning an awaitable (not already awaited).
        session: Optional session to roll back between attempts.
        max_retries: Maximum number of attempts.
        retry_delay: Initial delay in seconds, doubled after each attempt.
        operation_type: Label for metrics ("query", "update", "commit", ...).

    Returns:
        Result of the operation.

    Raises:
        OperationalError: If the operation still fails after max_retries, or fails
            with a non-lock error.
    """
    for attempt in range(max_retries):
        try:
            return await operation()
        except OperationalError as exc:
            if "locked" not in str(exc).lower() or attempt >= max_retries - 1:
                db_retries_failed_total.labels(operation_type=operation_type).inc()
                logger.error(
                    "Database operation failed",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    operation_type=operation_type,
                    error=str(exc)[:200],
                )
                raise

            db_retry_attempts_total.labels(operation_type=operation_type).inc()
            logger.debug(
                "Database lock detected, retrying",
                attempt=attempt + 1,
                max_retries=max_retries,
                operation_type=operation_type,
            )
            if session is not None:
                await session.rollback()
            await asyncio.sleep(retry_delay * (2**attempt))

    raise RuntimeError(f"Operation failed after {max_retries} retries")
