"""Tests for key serialization."""

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from pairvault.vault.keys import (
    dump_private,
    dump_public,
    load_private,
    load_public,
    same_private_key,
    same_public_key,
)


class TestPrivateKeys:
    def test_rsa_roundtrip(self, rsa_key):
        assert same_private_key(load_private(dump_private(rsa_key)), rsa_key)

    def test_ed25519_roundtrip(self, ed25519_key):
        assert same_private_key(load_private(dump_private(ed25519_key)), ed25519_key)

    def test_ec_roundtrip(self):
        key = ec.generate_private_key(ec.SECP256R1())
        assert same_private_key(load_private(dump_private(key)), key)

    def test_different_keys_differ(self, rsa_key, other_rsa_key):
        assert not same_private_key(rsa_key, other_rsa_key)

    @pytest.mark.parametrize("data", [b"", b"garbage", b"\x30\x03\x02\x01\x00"])
    def test_garbage_rejected(self, data):
        with pytest.raises(ValueError, match="private key"):
            load_private(data)

    def test_public_der_is_not_a_private_key(self, rsa_key):
        with pytest.raises(ValueError):
            load_private(dump_public(rsa_key.public_key()))


class TestPublicKeys:
    def test_roundtrip(self, rsa_key):
        public = rsa_key.public_key()
        assert same_public_key(load_public(dump_public(public)), public)

    def test_der_passthrough(self, ed25519_key):
        der = dump_public(ed25519_key.public_key())
        assert dump_public(der) == der
        assert dump_public(bytearray(der)) == der

    def test_invalid_der_rejected(self):
        with pytest.raises(ValueError, match="public key"):
            dump_public(b"not a key")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            load_public(b"\x00\x01")

    def test_mismatched_pairs(self, rsa_key, other_rsa_key):
        assert not same_public_key(rsa_key.public_key(), other_rsa_key.public_key())
