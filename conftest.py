"""
Root-level shared test fixtures.

Inherited by tests/ and pairvault/vault/tests/.
"""

from __future__ import annotations

import uuid

import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from pairvault.config import reset_config

FAST_KDF_ITERATIONS = "1000"


@pytest.fixture
def test_prefix():
    """Unique prefix for test isolation."""
    return f"test_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def clean_env(monkeypatch):
    """Remove pairvault env vars that leak between tests."""
    for key in [
        "PAIRVAULT_DB_HOST",
        "PAIRVAULT_DB_PORT",
        "PAIRVAULT_DB_NAME",
        "PAIRVAULT_DB_USER",
        "PAIRVAULT_DB_PASSWORD",
        "PAIRVAULT_DB_POOL_MIN",
        "PAIRVAULT_DB_POOL_MAX",
        "PAIRVAULT_CIPHER",
        "PAIRVAULT_KDF_ITERATIONS",
        "PAIRVAULT_PRINCIPAL_TABLE",
        "PAIRVAULT_PRINCIPAL_COLUMN",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Keep PBKDF2 cheap; production iteration counts make the suite crawl."""
    monkeypatch.setenv("PAIRVAULT_KDF_ITERATIONS", FAST_KDF_ITERATIONS)
    reset_config()
    yield
    reset_config()


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ed25519_key():
    return ed25519.Ed25519PrivateKey.generate()
