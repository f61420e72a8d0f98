import pytest
from nacl.pwhash import argon2id

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from sealkit.crypto_utils import (
    Argon2idKdf,
    CryptoProvider,
    KeyPairService,
    PrivateKeyVault,
)


@pytest.fixture(scope="session")
def provider() -> CryptoProvider:
    return CryptoProvider.initialize()


@pytest.fixture(scope="session")
def fast_kdf() -> Argon2idKdf:
    # Library minimum limits keep the suite fast; production uses interactive limits.
    return Argon2idKdf(opslimit=argon2id.OPSLIMIT_MIN, memlimit=argon2id.MEMLIMIT_MIN)


@pytest.fixture
def vault(provider, fast_kdf) -> PrivateKeyVault:
    return PrivateKeyVault(fast_kdf, provider=provider)


@pytest.fixture
def keypairs(provider) -> KeyPairService:
    return KeyPairService(provider)


@pytest.fixture
def alice(keypairs):
    return {"id": "alice", "keys": keypairs.generate()}


@pytest.fixture
def bob(keypairs):
    return {"id": "bob", "keys": keypairs.generate()}
