"""
Key pair lifecycle — the vault's business operations.

Each operation runs its reads and writes inside one transaction from
pairvault.db.get_connection, so a key pair is either fully written or not
written at all, and a password change or copy never leaves a stale envelope.

Passwords and decrypted keys live only for the duration of a call; nothing
here caches, stores or logs them.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2

from pairvault.db.connection import get_connection
from pairvault.vault import crypto, dal, keys
from pairvault.vault.errors import (
    InternalConsistencyError,
    KeyExists,
    KeyNotFound,
    StorageError,
    VaultError,
    WrongPassword,
)
from pairvault.vault.models import NAME_MAX_LENGTH

logger = logging.getLogger(__name__)


def _safe_audit(operation: str, name: str, **kwargs: Any) -> None:
    """Wrap audit logging so it never propagates exceptions."""
    try:
        from pairvault.audit.logger import log_vault_event

        log_vault_event(operation, name, **kwargs)
    except Exception as e:
        logger.warning("Audit call failed (non-fatal): %s", e)


@contextmanager
def _transaction() -> Generator[Any, None, None]:
    """One vault transaction; storage failures surface as StorageError."""
    try:
        with get_connection() as conn:
            yield conn
    except VaultError:
        raise
    except (psycopg2.Error, ConnectionError) as e:
        logger.error("Vault storage failure: %s", e)
        raise StorageError(str(e)) from e


def _check_name(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise ValueError("Key name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise ValueError(f"Key name must be at most {NAME_MAX_LENGTH} characters, got {len(name)}")


def _check_owner(owner: int) -> None:
    if isinstance(owner, bool) or not isinstance(owner, int):
        raise ValueError(f"Owner must be an integer principal id, got {owner!r}")


def _check_password(password: str | bytes) -> None:
    if not isinstance(password, (str, bytes)) or not password:
        raise ValueError("Password must be a non-empty str or bytes")


def _unlock(conn, name: str, owner: int, password: str | bytes, *, for_update: bool = False):
    envelope = dal.fetch_private_envelope(conn, name, owner, for_update=for_update)
    if envelope is None:
        raise KeyNotFound(name, owner)
    try:
        return crypto.decrypt_key(password, envelope)
    except WrongPassword as e:
        logger.info("Rejected password for private key %r (owner %s)", name, owner)
        raise WrongPassword(name, owner) from e


# ─── Queries ─────────────────────────────────────────────────────────────


def is_key(name: str) -> bool:
    """True if a public key is stored under ``name`` (case sensitive)."""
    _check_name(name)
    with _transaction() as conn:
        return dal.exists_public(conn, name)


def is_key_user(name: str, owner: int) -> bool:
    """True if ``owner`` holds a private key for ``name``."""
    _check_name(name)
    _check_owner(owner)
    with _transaction() as conn:
        return dal.exists_private(conn, name, owner)


def list_keys(owner: int | None = None) -> list[str]:
    """Names of all public keys, or of the private keys held by ``owner``."""
    if owner is not None:
        _check_owner(owner)
    with _transaction() as conn:
        return [r.name for r in dal.list_records(conn, owner=owner)]


def get_public_key(name: str) -> keys.PublicKey:
    """Return the shared public key stored under ``name``.

    Raises:
        KeyNotFound: no public key for ``name``.
        InternalConsistencyError: the stored key material does not parse.
    """
    _check_name(name)
    with _transaction() as conn:
        material = dal.fetch_public(conn, name)
    if material is None:
        raise KeyNotFound(name)
    try:
        return keys.load_public(material)
    except ValueError as e:
        logger.error("Stored public key %r is unreadable: %s", name, e)
        raise InternalConsistencyError(f"Stored public key for {name!r} is unreadable: {e}") from e


def get_private_key(name: str, owner: int, password: str | bytes) -> keys.PrivateKey:
    """Decrypt and return ``owner``'s private key for ``name``.

    Raises:
        KeyNotFound: ``owner`` has no private key for ``name``.
        WrongPassword: ``password`` does not unlock it.
    """
    _check_name(name)
    _check_owner(owner)
    _check_password(password)
    try:
        with _transaction() as conn:
            return _unlock(conn, name, owner, password)
    except WrongPassword:
        _safe_audit("vault.unlock", name, owner=owner, status="denied")
        raise


# ─── Mutations ───────────────────────────────────────────────────────────


def save_key(
    private_key: keys.PrivateKey,
    public_key: keys.PublicKeyInput,
    name: str,
    owner: int,
    password: str | bytes,
) -> None:
    """Store a new key pair: the shared public key plus ``owner``'s encrypted private key.

    Both rows are inserted in one transaction. A concurrent save of the same
    name loses on the unique index and gets KeyExists, with nothing written.

    Raises:
        KeyExists: a public key is already stored under ``name``.
    """
    _check_name(name)
    _check_owner(owner)
    _check_password(password)
    public_der = keys.dump_public(public_key)

    with _transaction() as conn:
        if dal.exists_public(conn, name):
            raise KeyExists(name)

    envelope = crypto.encrypt_key(password, private_key)

    with _transaction() as conn:
        dal.insert_public(conn, name, public_der)
        dal.insert_private(conn, name, owner, envelope)

    logger.info("Saved key pair %r for owner %s (%s)", name, owner, envelope.algorithm)
    _safe_audit("vault.save", name, owner=owner, details={"cipher": envelope.algorithm})


def delete_key(name: str) -> bool:
    """Remove the public key and every owner's private key for ``name``.

    Idempotent: returns False when there was nothing to delete.
    """
    _check_name(name)
    with _transaction() as conn:
        removed = dal.delete_by_name(conn, name)
    if removed:
        logger.info("Deleted key pair %r (%d rows)", name, removed)
        _safe_audit("vault.delete", name, details={"rows": removed})
    return removed > 0


def delete_private_key(name: str, owner: int) -> bool:
    """Remove only ``owner``'s private key for ``name``. Idempotent."""
    _check_name(name)
    _check_owner(owner)
    with _transaction() as conn:
        removed = dal.delete_private(conn, name, owner)
    if removed:
        logger.info("Deleted private key %r for owner %s", name, owner)
        _safe_audit("vault.delete_private", name, owner=owner)
    return removed > 0


def change_private_key_password(
    name: str,
    owner: int,
    old_password: str | bytes,
    new_password: str | bytes,
) -> None:
    """Re-encrypt ``owner``'s private key under a new password.

    The row is locked, verified with ``old_password`` and replaced in the
    same transaction.

    Raises:
        KeyNotFound: ``owner`` has no private key for ``name``.
        WrongPassword: ``old_password`` does not unlock it.
    """
    _check_name(name)
    _check_owner(owner)
    _check_password(old_password)
    _check_password(new_password)
    try:
        with _transaction() as conn:
            private_key = _unlock(conn, name, owner, old_password, for_update=True)
            envelope = crypto.encrypt_key(new_password, private_key)
            dal.update_private_envelope(conn, name, owner, envelope)
    except WrongPassword:
        _safe_audit("vault.change_password", name, owner=owner, status="denied")
        raise

    logger.info("Changed password for private key %r (owner %s)", name, owner)
    _safe_audit("vault.change_password", name, owner=owner)


def copy_private_key(
    name: str,
    owner_from: int,
    owner_to: int,
    password_from: str | bytes,
    password_to: str | bytes,
    *,
    overwrite: bool = True,
) -> None:
    """Give ``owner_to`` a copy of ``owner_from``'s private key under ``password_to``.

    An existing private key of ``owner_to`` for ``name`` is replaced unless
    ``overwrite`` is False, in which case KeyExists is raised and nothing changes.

    Raises:
        KeyNotFound: ``owner_from`` has no private key for ``name``.
        WrongPassword: ``password_from`` does not unlock it.
        KeyExists: ``overwrite`` is False and ``owner_to`` already has one.
    """
    _check_name(name)
    _check_owner(owner_from)
    _check_owner(owner_to)
    _check_password(password_from)
    _check_password(password_to)
    try:
        with _transaction() as conn:
            private_key = _unlock(conn, name, owner_from, password_from)
            envelope = crypto.encrypt_key(password_to, private_key)
            replaced = dal.exists_private(conn, name, owner_to)
            if replaced:
                if not overwrite:
                    raise KeyExists(name, owner_to)
                dal.update_private_envelope(conn, name, owner_to, envelope)
            else:
                dal.insert_private(conn, name, owner_to, envelope)
    except WrongPassword:
        _safe_audit("vault.copy", name, owner=owner_from, status="denied")
        raise

    logger.info(
        "Copied private key %r from owner %s to owner %s%s",
        name,
        owner_from,
        owner_to,
        " (replaced existing)" if replaced else "",
    )
    _safe_audit(
        "vault.copy",
        name,
        owner=owner_to,
        details={"from_owner": owner_from, "replaced": replaced},
    )


# ─── Schema ──────────────────────────────────────────────────────────────


def ensure_schema() -> bool:
    """Create the vault and audit tables if absent. Returns True if the vault table was created."""
    with _transaction() as conn:
        created = dal.ensure_schema(conn)
        from pairvault.audit.logger import ensure_audit_table

        ensure_audit_table(conn)
    return created
