"""
pairvault audit log — one row per vault mutation or failed unlock.

Event operations:
  - vault.save, vault.delete, vault.delete_private: key pair lifecycle
  - vault.change_password, vault.copy: private key re-encryption
  - vault.unlock: failed password checks (status="denied")

Never pass passwords, derived keys or key material in ``details``.

Usage:
    from pairvault.audit.logger import log_vault_event, query_log
    log_vault_event("vault.save", "signing", owner=42)
"""

from __future__ import annotations

import logging

import psycopg2
from psycopg2.extras import Json

logger = logging.getLogger(__name__)

# Connections resolve lazily so tests can swap in a factory
_conn_factory = None

AUDIT_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS vault_audit_log (
        id          BIGSERIAL PRIMARY KEY,
        timestamp   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        operation   TEXT NOT NULL,
        name        VARCHAR(64) NOT NULL,
        owner       INTEGER,
        status      TEXT NOT NULL DEFAULT 'ok',
        details     JSONB
    )
"""


def _get_connection():
    """Get a database connection from the pool, or a direct one as fallback."""
    if _conn_factory is not None:
        return _conn_factory()

    try:
        from pairvault.db.connection import get_pool

        pool = get_pool()
        return pool.getconn()
    except Exception:
        from pairvault.config import get_config

        cfg = get_config()
        return psycopg2.connect(cfg.db.dsn)


def _release_connection(conn):
    """Return connection to pool if using pooled connections."""
    if _conn_factory is not None:
        return
    try:
        from pairvault.db.connection import get_pool

        pool = get_pool()
        pool.putconn(conn)
    except Exception:
        try:
            conn.close()
        except Exception as e:
            logger.debug("Audit connection close failed: %s", e)


def set_connection_factory(factory):
    """Override connection factory for testing."""
    global _conn_factory
    _conn_factory = factory


def reset_connection_factory():
    """Reset connection factory to default."""
    global _conn_factory
    _conn_factory = None


def _discard_transaction(conn) -> None:
    """Roll back a failed audit write so the connection goes back to the pool clean."""
    try:
        conn.rollback()
    except Exception as e:
        logger.debug("Audit rollback failed: %s", e)


def ensure_audit_table(conn) -> None:
    """Create the audit table inside the caller's transaction."""
    with conn.cursor() as cur:
        cur.execute(AUDIT_TABLE_SQL)


def log_vault_event(
    operation: str,
    name: str,
    *,
    owner: int | None = None,
    status: str = "ok",
    details: dict | None = None,
) -> dict | None:
    """Record a vault event.

    Returns {"id": int, "timestamp": str} on success, None on failure.
    Failures are logged but never raise, audit must not break callers.
    The connection is always released, rolled back first if the write failed.
    """
    try:
        conn = _get_connection()
    except Exception as e:
        logger.warning("Audit log_vault_event failed: %s", e)
        return None

    try:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO vault_audit_log (operation, name, owner, status, details)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, timestamp
            """,
            (operation, name, owner, status, Json(details) if details else None),
        )
        row = cur.fetchone()
        conn.commit()
        return {"id": row[0], "timestamp": row[1].isoformat()}
    except Exception as e:
        _discard_transaction(conn)
        logger.warning("Audit log_vault_event failed: %s", e)
        return None
    finally:
        _release_connection(conn)


def query_log(
    limit: int = 50,
    operation: str | None = None,
    name: str | None = None,
    owner: int | None = None,
    status: str | None = None,
    since: str | None = None,
) -> list[dict]:
    """Query the audit log with filters, newest first."""
    query = (
        "SELECT id, timestamp, operation, name, owner, status, details "
        "FROM vault_audit_log WHERE 1=1"
    )
    params: list = []

    if operation:
        query += " AND operation = %s"
        params.append(operation)
    if name:
        query += " AND name = %s"
        params.append(name)
    if owner is not None:
        query += " AND owner = %s"
        params.append(owner)
    if status:
        query += " AND status = %s"
        params.append(status)
    if since:
        query += " AND timestamp >= %s"
        params.append(since)

    query += " ORDER BY timestamp DESC LIMIT %s"
    params.append(limit)

    try:
        conn = _get_connection()
    except Exception as e:
        logger.warning("Audit query_log failed: %s", e)
        return []

    try:
        cur = conn.cursor()
        cur.execute(query, params)
        rows = cur.fetchall()
        conn.rollback()
        return [
            {
                "id": r[0],
                "timestamp": r[1].isoformat(),
                "operation": r[2],
                "name": r[3],
                "owner": r[4],
                "status": r[5],
                "details": r[6],
            }
            for r in rows
        ]
    except Exception as e:
        _discard_transaction(conn)
        logger.warning("Audit query_log failed: %s", e)
        return []
    finally:
        _release_connection(conn)
