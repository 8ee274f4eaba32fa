"""Database Session Manager — engine lifecycle, request sessions and readiness check.

Invariants:
    - A session that sees an exception is rolled back before the error propagates
    - SQLAlchemy failures leave this module as CartelError subclasses:
      constraint violations -> ConflictError (409), everything else -> DatabaseError (503)
    - Sessions never auto-commit; callers commit explicitly, except user_session,
      which commits when its block exits cleanly and rolls back otherwise
    - user_session carries an RLS context (app.current_user_id / app.current_user_role)
      into every transaction it opens
    - Pool sizing only applies to server backends; SQLite keeps its default pool

Design Decisions:
    - Module-level db_manager set by the FastAPI lifespan, never at import time
    - expire_on_commit=False: rows stay readable after commit in async code
    - Routes that expect a specific constraint (duplicate application message_id,
      treasury address) catch IntegrityError themselves with a precise message;
      the mapping here is the fallback for everything else
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from app.core.errors import CartelError, ConflictError, DatabaseError
from app.infrastructure.rls import apply_user_context

logger = logging.getLogger(__name__)

# Most specific first: IntegrityError and OperationalError are DBAPIError subclasses
_OPERATIONS: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (OperationalError, "execute", "Connection or operational error"),
    (DBAPIError, "query", "Database driver error"),
    (SQLAlchemyError, "unknown", "Database operation failed"),
)


def map_database_error(error: SQLAlchemyError) -> CartelError:
    """Translate a SQLAlchemy exception into the API error hierarchy."""
    if isinstance(error, IntegrityError):
        return ConflictError("Resource conflicts with existing data")
    for exc_type, operation, message in _OPERATIONS:
        if isinstance(error, exc_type):
            return DatabaseError(message, operation)
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    """Owns the async engine and hands out sessions."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        engine_kwargs = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            mapped = map_database_error(e)
            logger.error(
                f"Database error ({type(e).__name__}): {e}",
                extra={"error_code": mapped.code},
            )
            raise mapped from e
        finally:
            await session.close()

    @asynccontextmanager
    async def user_session(
        self, user_id: str | None, role: str | None,
    ) -> AsyncGenerator[AsyncSession, None]:
        """Session for work done on behalf of a user outside a request.

        The block may commit on its own; whatever is pending when it exits
        is committed, or rolled back if the block raised.
        """
        async with self.session() as session:
            await apply_user_context(session, user_id, role)
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        """True when a trivial query round-trips."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except CartelError as e:
            logger.error(f"DB health check failed: {e.message}")
            return False
        except OSError as e:
            logger.error(f"DB health check failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
