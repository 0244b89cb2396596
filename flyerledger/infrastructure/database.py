"""Database Session Manager: async connection pool, transactions and error mapping.

Invariants:
    - Every session and every transaction auto-rolls-back on exception or cancellation
      (no partial commits leak, no half-applied transition)
    - Connection pool uses pool_pre_ping for stale connection detection
    - All SQLAlchemy exceptions mapped to core/errors.py types, with the operation
      and identifying keys attached
    - StaleDataError (optimistic version mismatch) maps to ConcurrencyError

Design Decisions:
    - Singleton db_manager initialized on startup by the host application
    - expire_on_commit=False: prevents lazy-load issues in async context
    - transaction() commits/rolls back explicitly instead of session.begin(): the
      session may already be in an autobegun transaction from an earlier read
    - A rollback expires every object the session holds, including ones the caller
      loaded before the failed call; reload by id afterwards, since a lazy refresh
      outside greenlet_spawn raises MissingGreenlet
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy import text

from flyerledger.core.errors import (
    ConcurrencyError, DatabaseError, ErrorContext, LedgerError,
)

logger = logging.getLogger(__name__)


def map_db_error(
    exc: SQLAlchemyError, operation: str, context: ErrorContext | None = None,
) -> LedgerError:
    """Translate a SQLAlchemy exception into the ledger error hierarchy."""
    ctx = context or ErrorContext()
    ctx.operation = ctx.operation or operation
    ctx.debug_info = {"exception": type(exc).__name__}

    if isinstance(exc, StaleDataError):
        return ConcurrencyError(
            f"Concurrent modification during {operation}; reload and retry.", ctx,
        )
    if isinstance(exc, IntegrityError):
        return DatabaseError("Integrity constraint violated", operation, ctx)
    if isinstance(exc, OperationalError):
        return DatabaseError("Connection or operational error", operation, ctx)
    if isinstance(exc, DBAPIError):
        return DatabaseError("Database driver error", operation, ctx)
    return DatabaseError("Database operation failed", operation, ctx)


@asynccontextmanager
async def transaction(
    db: AsyncSession, operation: str, context: ErrorContext | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Run one unit of work: commit on success, roll back on any failure.

    The rollback expires all instances in `db`, not only the ones this unit touched.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        error = map_db_error(e, operation, context)
        logger.error(
            f"{operation} failed: {e}",
            extra={"error_code": error.code, **error.context.keys()},
        )
        raise error from e
    except BaseException:
        # LedgerError from a guard, or CancelledError from the caller's deadline
        await db.rollback()
        raise


class DatabaseSessionManager:
    """Manages async database sessions with pooling, rollback, and health checks."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        self.engine = create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"DB error outside a transaction: {e}")
            raise map_db_error(e, "session") from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except LedgerError as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs):
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
