"""Async SQLAlchemy engine and session management."""

from collections.abc import AsyncGenerator, Awaitable, Callable

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, SessionTransaction
from sqlalchemy.pool import NullPool

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_PENDING_CALLBACKS = "after_commit_pending"
_READY_CALLBACKS = "after_commit_ready"


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    if url.startswith("sqlite"):
        # SQLite has no server-side pool and no prepared statement cache
        _engine = create_async_engine(url, poolclass=NullPool, echo=False)
        _enable_sqlite_savepoints(_engine)
    else:
        _engine = create_async_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
            connect_args={"statement_cache_size": 0},
        )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINTs (begin_nested) nest correctly on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (used outside request scope, e.g. seeding)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


def after_commit(db: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """Run ``callback`` once the current transaction commits; drop it on rollback.

    Side effects outside the database (Redis counters) go through here so a
    rolled-back request leaves no trace.
    """
    db.sync_session.info.setdefault(_PENDING_CALLBACKS, []).append(callback)


@event.listens_for(Session, "after_commit")
def _promote_callbacks(session: Session) -> None:
    pending = session.info.pop(_PENDING_CALLBACKS, None)
    if pending:
        session.info.setdefault(_READY_CALLBACKS, []).extend(pending)


@event.listens_for(Session, "after_transaction_end")
def _discard_uncommitted(session: Session, transaction: SessionTransaction) -> None:
    # after_commit has already promoted anything that committed
    if transaction.parent is None:
        session.info.pop(_PENDING_CALLBACKS, None)


async def run_after_commit_callbacks(db: AsyncSession) -> int:
    """Run callbacks whose transaction has committed. Returns how many ran."""
    ready = db.sync_session.info.pop(_READY_CALLBACKS, [])
    for callback in ready:
        await callback()
    if ready:
        logger.debug("after_commit_callbacks_ran", count=len(ready))
    return len(ready)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await run_after_commit_callbacks(session)
