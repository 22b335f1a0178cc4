"""
Key serialization boundary.

The vault is agnostic to the key algorithm: anything ``cryptography`` can
serialize to PKCS#8 / SubjectPublicKeyInfo DER (RSA, EC, Ed25519, ...) is
accepted. DER parsing is strict, which is what makes ``load_private`` usable
as the structural check on decrypted bytes.
"""

from __future__ import annotations

from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)

PrivateKey = PrivateKeyTypes
PublicKey = PublicKeyTypes
PublicKeyInput = Union[PublicKeyTypes, bytes]


def dump_private(key: PrivateKey) -> bytes:
    """Serialize a private key to unencrypted PKCS#8 DER."""
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private(data: bytes) -> PrivateKey:
    """Parse PKCS#8 DER back into a private key.

    Raises:
        ValueError: if ``data`` is not a well-formed private key.
    """
    try:
        return serialization.load_der_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ValueError(f"Not a valid private key: {e}") from e


def dump_public(key: PublicKeyInput) -> bytes:
    """Serialize a public key to SubjectPublicKeyInfo DER.

    Already-serialized DER is validated and passed through unchanged.
    """
    if isinstance(key, (bytes, bytearray, memoryview)):
        data = bytes(key)
        load_public(data)
        return data
    return key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_public(data: bytes) -> PublicKey:
    """Parse SubjectPublicKeyInfo DER into a public key.

    Raises:
        ValueError: if ``data`` is not a well-formed public key.
    """
    try:
        return serialization.load_der_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ValueError(f"Not a valid public key: {e}") from e


def same_private_key(a: PrivateKey, b: PrivateKey) -> bool:
    """Structural equality of two private keys (same serialized form)."""
    return dump_private(a) == dump_private(b)


def same_public_key(a: PublicKeyInput, b: PublicKeyInput) -> bool:
    """Structural equality of two public keys."""
    return dump_public(a) == dump_public(b)
