"""
Test fixtures for the vault lifecycle.

The lifecycle suites run against InMemoryVault, which stands in for both the
dal module and pairvault.db.get_connection:
- rows are VaultRecord models holding the same bytes the real table would
- the same uniqueness rules raise the same KeyExists the dal raises
- every connection block snapshots on enter and restores on exception
- connection blocks from different threads run one at a time, like
  serializable transactions
"""

from __future__ import annotations

import threading
from contextlib import contextmanager

import psycopg2
import pytest

from pairvault.vault import lifecycle
from pairvault.vault.crypto import Envelope
from pairvault.vault.errors import InternalConsistencyError, KeyExists
from pairvault.vault.models import VaultRecord

# test_prefix, fast_kdf and the key fixtures come from the root conftest.py


class InMemoryVault:
    def __init__(self):
        self.rows: list[VaultRecord] = []
        self._next_id = 1
        self.commits = 0
        self.rollbacks = 0
        self.fail_on: set[str] = set()
        self.audit: list[tuple[str, str, dict]] = []
        self._lock = threading.RLock()

    @contextmanager
    def connection(self):
        with self._lock:
            snapshot = (list(self.rows), self._next_id)
            try:
                yield self
                self.commits += 1
            except Exception:
                self.rows, self._next_id = snapshot
                self.rollbacks += 1
                raise

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise psycopg2.OperationalError(f"injected failure in {operation}")

    def _add(self, is_private: bool, name: str, owner: int | None, material: bytes) -> None:
        self.rows.append(
            VaultRecord(
                id=self._next_id,
                is_private=is_private,
                name=name,
                owner=owner,
                material=material,
            )
        )
        self._next_id += 1

    def public_row(self, name: str) -> VaultRecord | None:
        return next((r for r in self.rows if r.name == name and not r.is_private), None)

    def private_row(self, name: str, owner: int) -> VaultRecord | None:
        return next(
            (r for r in self.rows if r.name == name and r.owner == owner and r.is_private),
            None,
        )

    # ── dal surface ──

    def exists_public(self, conn, name):
        return self.public_row(name) is not None

    def exists_private(self, conn, name, owner):
        return self.private_row(name, owner) is not None

    def insert_public(self, conn, name, material):
        self._maybe_fail("insert_public")
        if self.public_row(name) is not None:
            raise KeyExists(name)
        self._add(False, name, None, bytes(material))

    def insert_private(self, conn, name, owner, envelope):
        self._maybe_fail("insert_private")
        if self.private_row(name, owner) is not None:
            raise KeyExists(name, owner)
        self._add(True, name, owner, envelope.to_bytes())

    def fetch_public(self, conn, name):
        row = self.public_row(name)
        return row.material if row else None

    def fetch_private_envelope(self, conn, name, owner, *, for_update=False):
        row = self.private_row(name, owner)
        return Envelope.from_bytes(row.material) if row else None

    def list_records(self, conn, *, owner=None):
        if owner is None:
            matches = [r for r in self.rows if not r.is_private]
        else:
            matches = [r for r in self.rows if r.owner == owner and r.is_private]
        return sorted(matches, key=lambda r: r.name)

    def update_private_envelope(self, conn, name, owner, envelope):
        self._maybe_fail("update_private_envelope")
        hits = [i for i, r in enumerate(self.rows) if r.name == name and r.owner == owner]
        if len(hits) != 1:
            raise InternalConsistencyError(f"update private for {name!r} affected {len(hits)} rows")
        i = hits[0]
        self.rows[i] = self.rows[i].model_copy(update={"material": envelope.to_bytes()})

    def delete_by_name(self, conn, name):
        before = len(self.rows)
        self.rows = [r for r in self.rows if r.name != name]
        return before - len(self.rows)

    def delete_private(self, conn, name, owner):
        before = len(self.rows)
        self.rows = [r for r in self.rows if not (r.name == name and r.owner == owner)]
        return before - len(self.rows)

    def ensure_schema(self, conn, cfg=None):
        return False


@pytest.fixture
def vault_db(monkeypatch) -> InMemoryVault:
    """Route lifecycle storage and audit calls into an InMemoryVault."""
    db = InMemoryVault()
    monkeypatch.setattr(lifecycle, "dal", db)
    monkeypatch.setattr(lifecycle, "get_connection", db.connection)

    def record(operation, name, **kwargs):
        db.audit.append((operation, name, kwargs))
        return {"id": len(db.audit), "timestamp": "2026-01-01T00:00:00"}

    monkeypatch.setattr("pairvault.audit.logger.log_vault_event", record)
    return db
