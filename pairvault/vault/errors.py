"""Vault error kinds.

Lifecycle operations raise only these. Raw psycopg2 exceptions are wrapped
in StorageError with the original kept as ``__cause__``.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for every error a vault operation can raise."""


class KeyExists(VaultError):
    """A public key (or, for a non-overwriting copy, a private key) already holds the name."""

    def __init__(self, name: str, owner: int | None = None) -> None:
        self.name = name
        self.owner = owner
        if owner is None:
            super().__init__(f"Key already exists: {name!r}")
        else:
            super().__init__(f"Private key already exists: {name!r} for owner {owner}")


class KeyNotFound(VaultError):
    """No matching public or private record."""

    def __init__(self, name: str, owner: int | None = None) -> None:
        self.name = name
        self.owner = owner
        if owner is None:
            super().__init__(f"Public key not found: {name!r}")
        else:
            super().__init__(f"Private key not found: {name!r} for owner {owner}")


class WrongPassword(VaultError):
    """The password did not decrypt the private key to a valid key structure."""

    def __init__(self, name: str | None = None, owner: int | None = None) -> None:
        self.name = name
        self.owner = owner
        super().__init__("Incorrect password for private key")


class InternalConsistencyError(VaultError):
    """The store is in a state the vault never produces (unexpected row count, corrupt envelope)."""


class StorageError(VaultError):
    """The storage layer failed (connectivity, constraint, SQL)."""
