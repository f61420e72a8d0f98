import pytest

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from sealkit.crypto_utils import CryptoProvider
from sealkit.stores import SqliteDatabase


@pytest.fixture(scope="session")
def provider() -> CryptoProvider:
    return CryptoProvider.initialize()


@pytest.fixture
def db(tmp_path) -> SqliteDatabase:
    return SqliteDatabase(str(tmp_path / "db" / "sealkit.db"))
