"""
Database Connection Module

Provides synchronous engine and session management for the tenancy store.

Usage:
    engine = build_engine(DatabaseSettings(url="sqlite://"))
    init_schema(engine)
    session_factory = create_session_factory(engine)
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

from config.database import DatabaseSettings, get_database_settings
from database.models import Base

logger = logging.getLogger(__name__)

# Global sync engine and session factory (lazy initialization)
_sync_engine: Optional[Engine] = None
_sync_session_factory: Optional[sessionmaker] = None


def build_engine(settings: DatabaseSettings) -> Engine:
    """
    Create an engine for the given settings without caching it.

    SQLite in-memory databases share one connection (StaticPool) so that
    every session sees the same schema; file-backed SQLite opens a fresh
    connection per checkout. Server databases get a bounded QueuePool and
    run every transaction at the configured isolation level.
    """
    if settings.is_sqlite:
        return create_engine(
            settings.sync_url,
            echo=settings.echo_sql,
            poolclass=StaticPool if settings.is_memory else NullPool,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        settings.sync_url,
        echo=settings.echo_sql,
        poolclass=QueuePool,
        isolation_level=settings.isolation_level,
        **settings.pool_options(),
    )


def get_sync_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """
    Get or create the process-wide synchronous engine.

    Args:
        settings: Database settings. If None, loads from environment.
    """
    global _sync_engine

    if _sync_engine is None:
        settings = settings or get_database_settings()
        logger.info(
            "Creating sync database engine",
            extra={"extra_data": {
                "driver": settings.driver,
                "sqlite": settings.is_sqlite,
                "isolation_level": None if settings.is_sqlite else settings.isolation_level,
            }},
        )
        _sync_engine = build_engine(settings)

    return _sync_engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used by every service: no autoflush surprises, objects survive commit."""
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


def get_sync_session_factory(
    settings: Optional[DatabaseSettings] = None
) -> sessionmaker:
    """Get or create the process-wide session factory."""
    global _sync_session_factory

    if _sync_session_factory is None:
        _sync_session_factory = create_session_factory(get_sync_engine(settings))

    return _sync_session_factory


def init_schema(engine: Optional[Engine] = None) -> None:
    """Create every tenancy table that does not exist yet."""
    # Register the mapped classes on Base.metadata before creating tables
    import admin_panel.models  # noqa: F401
    import admin_panel.support.impersonation_models  # noqa: F401

    engine = engine or get_sync_engine()
    Base.metadata.create_all(engine)
    logger.info("Database schema initialized")


def close_sync_engine() -> None:
    """
    Close the sync database engine and cleanup connections.

    Should be called during application shutdown.
    """
    global _sync_engine, _sync_session_factory

    if _sync_engine is not None:
        logger.info("Closing sync database engine")
        _sync_engine.dispose()
        _sync_engine = None
        _sync_session_factory = None
