"""
Notivate Backend - Database Engine & Session Management
=========================================================

What:  Async SQLAlchemy engine construction, session factory, declarative Base
       and the transactional session scope used by repositories and routes.
How:   The engine is built explicitly from Settings at startup (lifespan) and
       handed to whoever needs it; nothing connects at import time.
Who:   main.py (lifespan), dependencies.py (per-request sessions), repositories.
When:  Engine built once per process; sessions opened per request or per
       repository call.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour

SQLite URLs (tests) skip the pool arguments; aiosqlite uses its own pool class.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from notivate.config import Settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object, which Alembic autogenerate and the test
    fixtures (`Base.metadata.create_all`) both read.
    """
    pass


# ── Engine Configuration ──────────────────────────────────────────────────
def build_engine(settings: Settings, url: Optional[str] = None) -> AsyncEngine:
    """
    Creates the async engine for the configured database URL.

    Args:
        settings: Application settings (pool sizing, log level)
        url:      Override for settings.database_url (tests, alembic)
    """
    database_url = url or settings.database_url
    kwargs: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(database_url, **kwargs)


# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit, outside the session
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Opens a session, commits on success and rolls back on any error.

    Used for both per-request sessions (via dependencies.get_db_session) and
    the short single-statement transactions of UsageRepository.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine(engine: AsyncEngine) -> None:
    """Closes every pooled connection. Called on application shutdown."""
    await engine.dispose()
