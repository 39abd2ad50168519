"""
Shared SQLAlchemy declarative base and portable column types.

Every tenancy table (plans, accounts, users, overrides, impersonation
sessions, audit logs) derives from ``Base`` defined here so a single
``Base.metadata.create_all(engine)`` builds the whole schema.

Architecture:
- Primary Keys: uuid4 strings (String(36)) so the same schema runs on
  PostgreSQL and SQLite
- JSON documents (capabilities, limits, features): JSONB on PostgreSQL,
  JSON elsewhere
- Timestamps: naive UTC
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, String
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


# Cross-database compatible JSON type
# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


def new_id() -> str:
    """Generate a primary key value."""
    return str(uuid4())


def utcnow() -> datetime:
    """Current time as naive UTC, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def id_column(**kwargs) -> Column:
    """Primary key column with a generated uuid4 string default."""
    return Column(String(36), primary_key=True, default=new_id, **kwargs)
