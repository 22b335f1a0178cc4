"""
Vault DAL — row-level operations on the ``vault`` table.

Every function takes an open psycopg2 connection and runs inside the
caller's transaction; none of them commit. Composite operations and the
commit/rollback boundary live in pairvault.vault.lifecycle.

Table layout:
    id          serial primary key
    is_private  false = shared public key, true = one owner's private key
    name        key pair name, case sensitive, max 64 chars
    owner       principal id (NULL for public rows)
    material    public key DER, or the encrypted envelope for private rows
"""

from __future__ import annotations

import logging

import psycopg2
import psycopg2.errors
from psycopg2 import sql

from pairvault.config import VaultConfig, get_config
from pairvault.vault.crypto import Envelope
from pairvault.vault.errors import InternalConsistencyError, KeyExists
from pairvault.vault.models import NAME_MAX_LENGTH, VaultRecord

logger = logging.getLogger(__name__)

TABLE = "vault"


# ─── Existence ───────────────────────────────────────────────────────────


def exists_public(conn, name: str) -> bool:
    """True if a public key is stored under ``name``."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT EXISTS (SELECT 1 FROM vault WHERE name = %s AND NOT is_private)",
            (name,),
        )
        row = cur.fetchone()
        return bool(row and row[0])


def exists_private(conn, name: str, owner: int) -> bool:
    """True if ``owner`` holds a private key under ``name``."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT EXISTS (SELECT 1 FROM vault WHERE name = %s AND owner = %s AND is_private)",
            (name, owner),
        )
        row = cur.fetchone()
        return bool(row and row[0])


# ─── Inserts ─────────────────────────────────────────────────────────────


def insert_public(conn, name: str, material: bytes) -> None:
    """Insert the shared public key row for ``name``.

    Raises:
        KeyExists: the unique index already holds a public row for ``name``.
    """
    with conn.cursor() as cur:
        try:
            cur.execute(
                "INSERT INTO vault (is_private, name, owner, material) VALUES (false, %s, NULL, %s)",
                (name, psycopg2.Binary(material)),
            )
        except psycopg2.errors.UniqueViolation as e:
            raise KeyExists(name) from e
        _expect_one(cur.rowcount, "insert public", name)


def insert_private(conn, name: str, owner: int, envelope: Envelope) -> None:
    """Insert ``owner``'s encrypted private key row for ``name``.

    Raises:
        KeyExists: ``owner`` already holds a private row for ``name``.
    """
    with conn.cursor() as cur:
        try:
            cur.execute(
                "INSERT INTO vault (is_private, name, owner, material) VALUES (true, %s, %s, %s)",
                (name, owner, psycopg2.Binary(envelope.to_bytes())),
            )
        except psycopg2.errors.UniqueViolation as e:
            raise KeyExists(name, owner) from e
        _expect_one(cur.rowcount, "insert private", name, owner)


# ─── Reads ───────────────────────────────────────────────────────────────


def fetch_public(conn, name: str) -> bytes | None:
    """Return the public key DER stored under ``name``, or None."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT material FROM vault WHERE name = %s AND NOT is_private",
            (name,),
        )
        row = cur.fetchone()
        return bytes(row[0]) if row else None


def fetch_private_envelope(
    conn,
    name: str,
    owner: int,
    *,
    for_update: bool = False,
) -> Envelope | None:
    """Return ``owner``'s envelope for ``name``, or None.

    ``for_update`` locks the row until the surrounding transaction ends.

    Raises:
        InternalConsistencyError: the stored material is not a readable envelope.
    """
    query = "SELECT material FROM vault WHERE name = %s AND owner = %s AND is_private"
    if for_update:
        query += " FOR UPDATE"
    with conn.cursor() as cur:
        cur.execute(query, (name, owner))
        row = cur.fetchone()
    if not row:
        return None
    try:
        return Envelope.from_bytes(bytes(row[0]))
    except ValueError as e:
        raise InternalConsistencyError(
            f"Stored envelope for {name!r} (owner {owner}) is unreadable: {e}"
        ) from e


def list_records(conn, *, owner: int | None = None) -> list[VaultRecord]:
    """Public records, or the private records of ``owner``, ordered by name."""
    with conn.cursor() as cur:
        if owner is None:
            cur.execute(
                "SELECT id, is_private, name, owner, material FROM vault "
                "WHERE NOT is_private ORDER BY name"
            )
        else:
            cur.execute(
                "SELECT id, is_private, name, owner, material FROM vault "
                "WHERE owner = %s AND is_private ORDER BY name",
                (owner,),
            )
        return [VaultRecord.from_row(r) for r in cur.fetchall()]


# ─── Updates / deletes ───────────────────────────────────────────────────


def update_private_envelope(conn, name: str, owner: int, envelope: Envelope) -> None:
    """Replace ``owner``'s envelope for ``name`` in a single row update.

    Raises:
        InternalConsistencyError: the update touched zero or several rows.
    """
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE vault SET material = %s WHERE name = %s AND owner = %s AND is_private",
            (psycopg2.Binary(envelope.to_bytes()), name, owner),
        )
        _expect_one(cur.rowcount, "update private", name, owner)


def delete_by_name(conn, name: str) -> int:
    """Remove the public row and every private row for ``name``. Returns rows removed."""
    with conn.cursor() as cur:
        cur.execute("DELETE FROM vault WHERE name = %s", (name,))
        return cur.rowcount


def delete_private(conn, name: str, owner: int) -> int:
    """Remove only ``owner``'s private row for ``name``. Returns rows removed."""
    with conn.cursor() as cur:
        cur.execute(
            "DELETE FROM vault WHERE name = %s AND owner = %s AND is_private",
            (name, owner),
        )
        return cur.rowcount


def _expect_one(rowcount: int, operation: str, name: str, owner: int | None = None) -> None:
    if rowcount != 1:
        logger.error(
            "Vault %s for %r (owner=%s) affected %d rows, expected 1",
            operation,
            name,
            owner,
            rowcount,
        )
        raise InternalConsistencyError(
            f"{operation} for {name!r} affected {rowcount} rows, expected 1"
        )


# ─── Schema ──────────────────────────────────────────────────────────────


def _create_table_sql(cfg: VaultConfig) -> sql.Composed:
    owner_fk = sql.SQL("")
    if cfg.has_principal_fk:
        owner_fk = sql.SQL(
            " CONSTRAINT fk_vault_owner REFERENCES {} ({}) ON UPDATE CASCADE ON DELETE CASCADE"
        ).format(
            sql.Identifier(*cfg.principal_table.split(".")),
            sql.Identifier(cfg.principal_column),
        )
    return sql.SQL(
        """
        CREATE TABLE IF NOT EXISTS vault (
            id          SERIAL PRIMARY KEY,
            is_private  BOOLEAN NOT NULL,
            name        VARCHAR({max_len}) NOT NULL,
            owner       INTEGER{owner_fk},
            material    BYTEA NOT NULL,
            CONSTRAINT vault_owner_matches_kind CHECK (is_private = (owner IS NOT NULL))
        )
        """
    ).format(max_len=sql.Literal(NAME_MAX_LENGTH), owner_fk=owner_fk)


INDEXES = (
    # lookup by owner + unique private key per (owner, name); NULL owners never collide
    "CREATE UNIQUE INDEX IF NOT EXISTS vault_owner_name_key ON vault (owner, name)",
    "CREATE INDEX IF NOT EXISTS vault_name_key ON vault (name)",
    # one public key per name
    "CREATE UNIQUE INDEX IF NOT EXISTS vault_public_name_key ON vault (name) WHERE NOT is_private",
)


def table_exists(conn) -> bool:
    with conn.cursor() as cur:
        cur.execute("SELECT to_regclass(%s) IS NOT NULL", (TABLE,))
        row = cur.fetchone()
        return bool(row and row[0])


def ensure_schema(conn, cfg: VaultConfig | None = None) -> bool:
    """Create the vault table and its indexes if absent. Returns True if created."""
    if table_exists(conn):
        return False
    cfg = cfg or get_config().vault
    with conn.cursor() as cur:
        cur.execute(_create_table_sql(cfg))
        for statement in INDEXES:
            cur.execute(statement)
    logger.info(
        "Created vault table (owner fk: %s)",
        f"{cfg.principal_table}.{cfg.principal_column}" if cfg.has_principal_fk else "none",
    )
    return True
