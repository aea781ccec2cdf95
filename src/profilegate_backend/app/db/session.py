# src/profilegate_backend/app/db/session.py

import logging
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from profilegate_backend.app.core.config import get_settings, normalize_database_url

log = logging.getLogger(__name__)


# ------------------------------------------------------------
# Base class for ORM models
# ------------------------------------------------------------
class Base(DeclarativeBase):
    """Base for all ORM models."""
    pass


# ------------------------------------------------------------
# Engine / session factory
# ------------------------------------------------------------
def create_engine_for(url: str, *, echo: bool = False) -> AsyncEngine:
    url = normalize_database_url(url)
    if not url:
        raise RuntimeError("DATABASE_URL not set in environment (.env)")
    return create_async_engine(url, echo=echo, pool_pre_ping=not url.startswith("sqlite"))


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use from DATABASE_URL."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.database_url, echo=settings.db_echo)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


# ------------------------------------------------------------
# FastAPI DB dependency
# ------------------------------------------------------------
async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Provides an async SQLAlchemy session for FastAPI, from the factory the app
    was built with. Ensures proper cleanup after request.
    """
    factory = getattr(request.app.state, "session_factory", None) or get_session_factory()
    async with factory() as session:
        yield session


async def check_connection(engine: Optional[AsyncEngine] = None) -> None:
    """Verify DB connectivity during startup."""
    async with (engine or get_engine()).connect() as conn:
        result = await conn.execute(text("SELECT 1"))
        log.info("DB connection OK: %s", result.scalar_one())


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
