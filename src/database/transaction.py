"""Transaction management for tenancy operations.

Every exposed operation runs inside exactly one transaction: it either
commits all of its reads and writes or has no effect at all.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from database.connection import get_sync_session_factory

logger = logging.getLogger(__name__)


@contextmanager
def transaction_scope(
    session_factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for one atomic unit of work.

    Usage:
        with transaction_scope() as session:
            session.add(account)
            # Auto-commits on success, auto-rollbacks on exception

    Args:
        session_factory: Factory to draw the session from. Defaults to the
            process-wide factory.

    Yields:
        Session: Database session bound to a fresh transaction.
    """
    factory = session_factory or get_sync_session_factory()
    session = factory()

    try:
        yield session
        session.commit()
        logger.debug("Transaction committed")
    except Exception as exc:
        session.rollback()
        logger.debug(f"Transaction rolled back due to: {type(exc).__name__}")
        raise
    finally:
        session.close()


@contextmanager
def read_only_scope(
    session_factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for query operations.

    The session always rolls back at the end, so nothing a query touches
    is ever persisted.
    """
    factory = session_factory or get_sync_session_factory()
    session = factory()

    try:
        yield session
    finally:
        session.rollback()
        session.close()
