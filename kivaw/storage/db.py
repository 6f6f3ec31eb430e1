"""Database engine and session configuration."""

import os

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from kivaw.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./kivaw.db"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _setting(name: str, attribute: str, default: str) -> str:
    """Read a setting from the environment first, then from app config.

    Alembic imports this module without a full environment, so config is
    imported lazily and its failures fall back to `default`.
    """
    value = os.getenv(name)
    if value:
        return value

    try:
        from kivaw.config import config
        return str(getattr(config, attribute))
    except Exception:
        return default


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign keys enforced."""
    engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
    if database_url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_engine() -> AsyncEngine:
    """Get or create the shared database engine."""
    global _engine

    if _engine is None:
        database_url = _setting("DATABASE_URL", "database_url", DEFAULT_DATABASE_URL)
        log_level = _setting("LOG_LEVEL", "log_level", "INFO").upper()

        logger.info(f"Creating database engine for {database_url}")
        _engine = create_engine_for_url(database_url, echo=log_level == "DEBUG")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory bound to the shared engine."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_factory


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables. Idempotent."""
    # Registers every model on Base.metadata
    from kivaw.storage import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_engine() -> None:
    """Close the database engine and dispose connections."""
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Closing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None
