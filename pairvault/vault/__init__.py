"""
pairvault vault — named asymmetric key pairs with password-protected private halves.

Public API:
    save_key(private, public, name, owner, password)     → store a new pair
    get_public_key(name)                                  → shared public key
    get_private_key(name, owner, password)                → decrypted private key
    delete_key(name)                                      → remove the whole pair
    delete_private_key(name, owner)                       → remove one owner's copy
    change_private_key_password(name, owner, old, new)    → re-encrypt in place
    copy_private_key(name, from, to, pw_from, pw_to)      → share with another owner
    is_key(name) / is_key_user(name, owner) / list_keys() → lookups
    ensure_schema()                                       → create tables if absent
"""

from __future__ import annotations

from pairvault.vault.crypto import Envelope
from pairvault.vault.errors import (
    InternalConsistencyError,
    KeyExists,
    KeyNotFound,
    StorageError,
    VaultError,
    WrongPassword,
)
from pairvault.vault.lifecycle import (
    change_private_key_password,
    copy_private_key,
    delete_key,
    delete_private_key,
    ensure_schema,
    get_private_key,
    get_public_key,
    is_key,
    is_key_user,
    list_keys,
    save_key,
)

__all__ = [
    "Envelope",
    "InternalConsistencyError",
    "KeyExists",
    "KeyNotFound",
    "StorageError",
    "VaultError",
    "WrongPassword",
    "change_private_key_password",
    "copy_private_key",
    "delete_key",
    "delete_private_key",
    "ensure_schema",
    "get_private_key",
    "get_public_key",
    "is_key",
    "is_key_user",
    "list_keys",
    "save_key",
]
