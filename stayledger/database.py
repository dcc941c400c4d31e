"""Database engine, session factory and transaction helpers."""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session

from stayledger.config import settings

logger = logging.getLogger(__name__)

# session.info keys
PENDING_CALLBACKS_KEY = "after_commit_pending"
READY_CALLBACKS_KEY = "after_commit_ready"


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    # Fetch server-side defaults on flush; async sessions cannot lazy-load them
    __mapper_args__ = {"eager_defaults": True}


engine: AsyncEngine | None = None
async_session_maker: async_sessionmaker[AsyncSession] | None = None


def configure_engine(url: str | None = None, **engine_kwargs) -> AsyncEngine:
    """(Re)create the global engine and session factory.

    Args:
        url: Database URL, defaults to settings.database_url
        engine_kwargs: Extra keyword arguments for create_async_engine

    Returns:
        AsyncEngine: The configured engine
    """
    global engine, async_session_maker

    url = url or settings.database_url
    if url.startswith("postgresql"):
        engine_kwargs.setdefault("pool_size", settings.db_pool_size)
        engine_kwargs.setdefault("max_overflow", settings.db_max_overflow)
        engine_kwargs.setdefault("pool_pre_ping", True)

    engine = create_async_engine(url, **engine_kwargs)
    async_session_maker = async_sessionmaker(engine, expire_on_commit=False)
    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session factory, creating the engine on first use."""
    if async_session_maker is None:
        configure_engine()
    return async_session_maker


# ==================== AFTER-COMMIT CALLBACKS ====================


def run_after_commit(db: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """Schedule a coroutine function to run once the current transaction commits.

    Callbacks are discarded if the transaction rolls back.
    """
    db.info.setdefault(PENDING_CALLBACKS_KEY, []).append(callback)


@event.listens_for(Session, "after_commit")
def _promote_after_commit_callbacks(session: Session) -> None:
    pending = session.info.pop(PENDING_CALLBACKS_KEY, None)
    if pending:
        session.info.setdefault(READY_CALLBACKS_KEY, []).extend(pending)


@event.listens_for(Session, "after_rollback")
def _discard_after_commit_callbacks(session: Session) -> None:
    session.info.pop(PENDING_CALLBACKS_KEY, None)


async def run_committed_callbacks(db: AsyncSession) -> None:
    """Run callbacks whose transaction has committed.

    A failing callback is logged and never propagates: the transaction it
    belongs to is already durable.
    """
    ready = db.info.pop(READY_CALLBACKS_KEY, None) or []
    for callback in ready:
        try:
            await callback()
        except Exception:
            logger.exception("After-commit callback %r failed", callback)


async def commit(db: AsyncSession) -> None:
    """Commit the session and run its after-commit callbacks."""
    await db.commit()
    await run_committed_callbacks(db)


# ==================== SESSION PROVIDERS ====================


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed on success."""
    async with get_session_maker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await commit(session)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session context manager for background tasks and scripts."""
    async with get_session_maker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await commit(session)


async def init_db() -> None:
    """Create all tables (development and tests only; use Alembic otherwise)."""
    import stayledger.models  # noqa: F401

    if engine is None:
        configure_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    if engine is not None:
        await engine.dispose()
