"""
Database Layer for the tenant administration engine.

This module provides:
- Shared declarative base and portable column types
- Sync engine and session factory with SQLite/PostgreSQL pooling
- Transaction scopes (one atomic transaction per operation)
"""

from .models import Base, JSONB, new_id, utcnow
from .connection import (
    build_engine,
    close_sync_engine,
    create_session_factory,
    get_sync_engine,
    get_sync_session_factory,
    init_schema,
)
from .transaction import read_only_scope, transaction_scope

__all__ = [
    "Base",
    "JSONB",
    "new_id",
    "utcnow",
    "build_engine",
    "close_sync_engine",
    "create_session_factory",
    "get_sync_engine",
    "get_sync_session_factory",
    "init_schema",
    "read_only_scope",
    "transaction_scope",
]
