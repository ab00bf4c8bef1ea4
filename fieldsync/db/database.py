"""
Database connection and session management for PostgreSQL.

Provides the SQLAlchemy declarative base, lazily created engines and
session factories shared by the repositories.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from fieldsync.db.config import get_db_settings
from fieldsync.utils.logger import logger


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


_async_engine: AsyncEngine | None = None
_async_session_local: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _async_engine
    if _async_engine is None:
        settings = get_db_settings()
        _async_engine = create_async_engine(
            settings.get_async_url(),
            echo=settings.echo,
            pool_pre_ping=True,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
    return _async_engine


def get_async_session_local() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _async_session_local
    if _async_session_local is None:
        _async_session_local = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_local


async def close_db() -> None:
    """Dispose of the engine. Call this on application shutdown."""
    global _async_engine, _async_session_local
    if _async_engine is None:
        return
    logger.info("Closing database connections...")
    await _async_engine.dispose()
    _async_engine = None
    _async_session_local = None
    logger.info("Database connections closed")
