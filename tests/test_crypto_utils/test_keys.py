import base64

import pytest
from nacl.public import PrivateKey

from sealkit.crypto_utils import (
    CryptoProvider,
    IdentityKeyPair,
    InvalidInput,
    load_public_key,
    serialize_public_key,
)


def test_generate_returns_32_byte_keys(keypairs):
    pair = keypairs.generate()
    assert isinstance(pair, IdentityKeyPair)
    assert len(pair.public_key) == 32
    assert len(pair.private_key) == 32


def test_generated_keys_are_fresh(keypairs):
    a = keypairs.generate()
    b = keypairs.generate()
    assert a.private_key != b.private_key
    assert a.public_key != b.public_key


def test_public_key_matches_libsodium_derivation(keypairs):
    # Keys must interoperate with sealed boxes, which derive the public half themselves.
    pair = keypairs.generate()
    assert bytes(PrivateKey(pair.private_key).public_key) == pair.public_key


def test_from_private_key_rebuilds_pair(keypairs):
    pair = keypairs.generate()
    assert IdentityKeyPair.from_private_key(pair.private_key) == pair


def test_repr_hides_private_key(keypairs):
    pair = keypairs.generate()
    assert repr(pair.private_key) not in repr(pair)


def test_wrong_length_keys_rejected():
    with pytest.raises(InvalidInput):
        IdentityKeyPair(public_key=b"\x01" * 31, private_key=b"\x02" * 32)
    with pytest.raises(InvalidInput):
        IdentityKeyPair.from_private_key(b"short")


def test_load_public_key_accepts_raw_and_b64(keypairs):
    pair = keypairs.generate()
    b64 = serialize_public_key(pair.public_key)
    assert b64 == base64.b64encode(pair.public_key).decode("utf-8")
    assert load_public_key(b64) == pair.public_key
    assert load_public_key(pair.public_key) == pair.public_key


def test_load_public_key_rejects_bad_input():
    with pytest.raises(InvalidInput):
        load_public_key(b"\x00" * 16)
    with pytest.raises(InvalidInput):
        load_public_key("not base64!!")


def test_provider_must_be_initialized_explicitly():
    with pytest.raises(InvalidInput):
        CryptoProvider()


def test_provider_random(provider):
    a = provider.random(32)
    b = provider.random(32)
    assert len(a) == 32 and a != b
    with pytest.raises(InvalidInput):
        provider.random(0)
