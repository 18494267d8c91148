"""
Kindred — Async Database Engine & Session Factory

Builds the async engine from ``DATABASE_URL`` (asyncpg in production,
aiosqlite for local runs and tests) and exposes:

* ``async_session_factory`` — used by services that own their transactions.
* ``get_db`` — async generator for FastAPI dependency injection on read paths.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from kindred.config import get_settings

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Declarative base for all ORM models
# ------------------------------------------------------------------ #

class Base(DeclarativeBase):
    """Shared declarative base.

    Every SQLAlchemy model in the project should inherit from this class::

        from kindred.database import Base

        class Match(Base):
            __tablename__ = "matches"
            ...
    """
    pass


# ------------------------------------------------------------------ #
# Pool configuration (server databases only)
# ------------------------------------------------------------------ #

_POOL_KWARGS = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def normalise_database_url(url: str) -> str:
    """Upgrade a plain ``postgresql://`` scheme to the asyncpg dialect."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine for ``url``.

    SQLite URLs skip the pool tuning parameters, which only apply to
    server databases.
    """
    url = normalise_database_url(url)
    if not url.startswith("sqlite"):
        for key, value in _POOL_KWARGS.items():
            kwargs.setdefault(key, value)

    engine = create_async_engine(url, echo=echo, **kwargs)
    logger.info("Database engine created (%s)", engine.url.get_backend_name())
    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ------------------------------------------------------------------ #
# Module-level engine & session factory
# ------------------------------------------------------------------ #

_settings = get_settings()

engine = build_engine(_settings.DATABASE_URL, echo=_settings.DB_ECHO)

async_session_factory: async_sessionmaker[AsyncSession] = build_session_factory(engine)


# ------------------------------------------------------------------ #
# FastAPI dependencies
# ------------------------------------------------------------------ #

def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory used by transactional services."""
    return async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` and ensure it is closed afterwards.

    Usage in a FastAPI route::

        from fastapi import Depends
        from kindred.database import get_db

        @router.get("/matches")
        async def list_matches(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
