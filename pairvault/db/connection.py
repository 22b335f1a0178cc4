"""
Pooled PostgreSQL connections with a commit-or-rollback boundary.

Every vault operation runs inside exactly one ``get_connection()`` block:
a normal exit commits, any exception rolls back and re-raises. That block is
the transaction boundary the vault relies on for all-or-nothing writes.

Usage:
    from pairvault.db import get_connection

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool

from pairvault.config import get_config

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Get or create the connection pool."""
    global _pool
    if _pool is not None and not _pool.closed:
        return _pool

    with _pool_lock:
        if _pool is not None and not _pool.closed:
            return _pool

        cfg = get_config().db
        logger.info(
            "Creating connection pool: %s@%s:%s/%s (min=%d, max=%d)",
            cfg.user,
            cfg.host or "<socket>",
            cfg.port,
            cfg.name,
            cfg.pool_min,
            cfg.pool_max,
        )
        try:
            _pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=cfg.pool_min,
                maxconn=cfg.pool_max,
                **cfg.dict,
            )
        except psycopg2.OperationalError as e:
            raise ConnectionError(
                f"Cannot connect to PostgreSQL at {cfg.host or '<socket>'}:{cfg.port}/{cfg.name}: {e}\n"
                f"Check PAIRVAULT_DB_* environment variables and ensure PostgreSQL is running."
            ) from e
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """Borrow a pooled connection for one transaction.

    Commits when the block exits normally. On any exception the transaction
    is rolled back before the exception propagates, so a partially written
    key pair is never visible to other connections.
    """
    pool = get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
