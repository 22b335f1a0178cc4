"""
Password-based envelope encryption for private keys.

Each envelope carries everything needed to decrypt it except the password:
    - a fresh 16-byte salt → PBKDF2-HMAC-SHA256 derives a 32-byte key
    - a fresh 12-byte nonce → AES-256-GCM or ChaCha20-Poly1305
    - the algorithm tag and iteration count, bound to the ciphertext as AAD

The AEAD tag turns a wrong password into an authentication failure, reported
as WrongPassword. Callers still parse the plaintext as a key before trusting it.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from pairvault.config import MAX_KDF_ITERATIONS, SUPPORTED_CIPHERS, get_config
from pairvault.vault import keys
from pairvault.vault.errors import WrongPassword

ENVELOPE_VERSION = 1
KDF_NAME = "pbkdf2-sha256"
KEY_LENGTH = 32  # 256 bits
SALT_LENGTH = 16
NONCE_LENGTH = 12  # 96 bits, required by both AEADs


@dataclass(frozen=True)
class Envelope:
    """Encrypted private key as stored in the vault's material column."""

    algorithm: str
    iterations: int
    salt: bytes
    nonce: bytes
    ciphertext: bytes

    @property
    def associated_data(self) -> bytes:
        return _associated_data(self.algorithm, self.iterations)

    def to_bytes(self) -> bytes:
        doc = {
            "v": ENVELOPE_VERSION,
            "alg": self.algorithm,
            "kdf": KDF_NAME,
            "iter": self.iterations,
            "salt": self.salt.hex(),
            "nonce": self.nonce.hex(),
            "ct": self.ciphertext.hex(),
        }
        return json.dumps(doc, separators=(",", ":"), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> Envelope:
        """Parse stored envelope bytes.

        Raises:
            ValueError: if the bytes are not an envelope this version understands.
        """
        try:
            doc = json.loads(bytes(data).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed envelope: {e}") from e
        if not isinstance(doc, dict):
            raise ValueError("Malformed envelope: not an object")
        if doc.get("v") != ENVELOPE_VERSION:
            raise ValueError(f"Unsupported envelope version: {doc.get('v')!r}")
        if doc.get("kdf") != KDF_NAME:
            raise ValueError(f"Unsupported KDF: {doc.get('kdf')!r}")
        algorithm = doc.get("alg")
        if algorithm not in SUPPORTED_CIPHERS:
            raise ValueError(f"Unsupported cipher: {algorithm!r}")
        iterations = doc.get("iter")
        _check_iterations(iterations)
        try:
            salt = bytes.fromhex(doc["salt"])
            nonce = bytes.fromhex(doc["nonce"])
            ciphertext = bytes.fromhex(doc["ct"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed envelope field: {e}") from e
        if len(nonce) != NONCE_LENGTH:
            raise ValueError(f"Nonce must be {NONCE_LENGTH} bytes, got {len(nonce)}")
        return cls(
            algorithm=algorithm,
            iterations=iterations,
            salt=salt,
            nonce=nonce,
            ciphertext=ciphertext,
        )


def _associated_data(algorithm: str, iterations: int) -> bytes:
    return f"pairvault:v{ENVELOPE_VERSION}:{algorithm}:{KDF_NAME}:{iterations}".encode("ascii")


def _check_iterations(iterations) -> None:
    if isinstance(iterations, bool) or not isinstance(iterations, int):
        raise ValueError(f"Invalid iteration count: {iterations!r}")
    if not 1 <= iterations <= MAX_KDF_ITERATIONS:
        raise ValueError(f"Invalid iteration count: {iterations} (allowed 1..{MAX_KDF_ITERATIONS})")


def _password_bytes(password: str | bytes) -> bytes:
    if isinstance(password, str):
        password = password.encode("utf-8")
    if not password:
        raise ValueError("Password must not be empty")
    return bytes(password)


def derive_key(password: str | bytes, salt: bytes, iterations: int) -> bytes:
    """Derive a 256-bit cipher key from a password with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(_password_bytes(password))


def _aead(algorithm: str, key: bytes) -> AESGCM | ChaCha20Poly1305:
    if algorithm == "aes-256-gcm":
        return AESGCM(key)
    if algorithm == "chacha20-poly1305":
        return ChaCha20Poly1305(key)
    raise ValueError(f"Unsupported cipher: {algorithm}")


def encrypt(
    password: str | bytes,
    plaintext: bytes,
    *,
    cipher: str | None = None,
    iterations: int | None = None,
) -> Envelope:
    """Encrypt bytes under a password. Salt and nonce are fresh on every call."""
    cfg = get_config().vault
    algorithm = cfg.cipher if cipher is None else cipher
    rounds = cfg.kdf_iterations if iterations is None else iterations
    _check_iterations(rounds)
    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)

    key = derive_key(password, salt, rounds)
    ciphertext = _aead(algorithm, key).encrypt(nonce, plaintext, _associated_data(algorithm, rounds))
    return Envelope(
        algorithm=algorithm,
        iterations=rounds,
        salt=salt,
        nonce=nonce,
        ciphertext=ciphertext,
    )


def decrypt(password: str | bytes, envelope: Envelope | bytes) -> bytes:
    """Decrypt an envelope back to the original bytes.

    Raises:
        WrongPassword: if authentication fails (wrong password or tampered envelope).
        ValueError: if ``envelope`` is raw bytes that do not parse.
    """
    if not isinstance(envelope, Envelope):
        envelope = Envelope.from_bytes(envelope)
    key = derive_key(password, envelope.salt, envelope.iterations)
    try:
        return _aead(envelope.algorithm, key).decrypt(
            envelope.nonce, envelope.ciphertext, envelope.associated_data
        )
    except InvalidTag as e:
        raise WrongPassword() from e


def encrypt_key(
    password: str | bytes,
    private_key: keys.PrivateKey,
    *,
    cipher: str | None = None,
    iterations: int | None = None,
) -> Envelope:
    """Serialize a private key and encrypt it under ``password``."""
    return encrypt(password, keys.dump_private(private_key), cipher=cipher, iterations=iterations)


def decrypt_key(password: str | bytes, envelope: Envelope | bytes) -> keys.PrivateKey:
    """Decrypt an envelope and parse the result as a private key.

    The parse is the structural check: bytes that do not load as a key are
    treated exactly like an authentication failure.
    """
    plaintext = decrypt(password, envelope)
    try:
        return keys.load_private(plaintext)
    except ValueError as e:
        raise WrongPassword() from e
