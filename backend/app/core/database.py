"""
Database layer — async SQLAlchemy 2.0 (asyncpg for PostgreSQL).

Provides:
    • Lazily-built async engine and session factory
    • Base model for ORM entities

The engine is created on first use rather than at import so that the
test suite (and the in-memory demo wiring) never needs a live database.

Usage:
    from backend.app.core.database import get_session_factory, Base

    factory = get_session_factory()
    async with factory() as session:
        ...
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──
def build_engine(config: Optional[Settings] = None) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    cfg = config or default_settings
    kwargs = {"echo": cfg.DATABASE_ECHO, "pool_pre_ping": True}
    if not cfg.DATABASE_URL.startswith("sqlite"):
        kwargs["pool_size"] = cfg.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = cfg.DATABASE_MAX_OVERFLOW
    return create_async_engine(cfg.DATABASE_URL, **kwargs)


def get_engine(config: Optional[Settings] = None) -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine(config)
    return _engine


# ── Session Factory ──
def get_session_factory(config: Optional[Settings] = None) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(config),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


# ── Lifecycle ──
async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables (dev/test only — use migrations in production)."""
    # Import for side effect: registers the tables on Base.metadata
    from backend.app.alerts import tables  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def ping(engine: Optional[AsyncEngine] = None) -> None:
    """Round-trip a trivial query; raises on connectivity failure."""
    target = engine or get_engine()
    async with target.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose engine connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None
