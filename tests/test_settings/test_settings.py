import logging
import os

import pytest

from sealkit.crypto_utils import (
    Argon2idKdf,
    FallbackFileKeyStorage,
    GenericHashFallbackKdf,
    InvalidInput,
    ScryptKdf,
    SecureMessagingCore,
    SessionKeyStorage,
)
from sealkit.settings import CryptoSettings, configure_logging, load_settings
from sealkit.stores import InMemorySaltStore


def test_defaults():
    s = load_settings({}, auto_dotenv=False)
    assert s.kdf == "argon2id"
    assert s.key_storage == "session"
    assert s.media_key_scheme == "derived"
    assert s.media_max_bytes == 10 * 1024 * 1024
    assert isinstance(s.kdf_strategy(), Argon2idKdf)


def test_explicit_mapping_wins_over_environment(monkeypatch):
    monkeypatch.setenv("SEALKIT_KDF", "generic-hash")
    monkeypatch.setenv("SEALKIT_MIN_PASSWORD_LENGTH", "20")
    s = load_settings({"SEALKIT_KDF": "scrypt", "SEALKIT_SCRYPT_N": "1024"}, auto_dotenv=False)
    assert s.kdf == "scrypt"
    assert s.min_password_length == 20
    kdf = s.kdf_strategy()
    assert isinstance(kdf, ScryptKdf) and kdf.n == 1024


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("SEALKIT_MEDIA_KEY_SCHEME", raising=False)
    env = tmp_path / ".env"
    env.write_text("SEALKIT_MEDIA_KEY_SCHEME=wrapped\n", encoding="utf-8")
    try:
        s = load_settings(dotenv_path=str(env))
        assert s.media_key_scheme == "wrapped"
    finally:
        # load_dotenv writes os.environ directly
        os.environ.pop("SEALKIT_MEDIA_KEY_SCHEME", None)


@pytest.mark.parametrize("mapping", [
    {"SEALKIT_KDF": "md5"},
    {"SEALKIT_KEY_STORAGE": "file"},
    {"SEALKIT_MEDIA_MAX_BYTES": "0"},
    {"SEALKIT_LOG_LEVEL": "LOUD"},
])
def test_invalid_settings_rejected(mapping):
    with pytest.raises(InvalidInput):
        load_settings(mapping, auto_dotenv=False)


def test_unknown_fields_forbidden():
    with pytest.raises(Exception):
        CryptoSettings(unknown_field=1)


def test_generic_hash_strategy():
    s = CryptoSettings(kdf="generic-hash")
    assert isinstance(s.kdf_strategy(), GenericHashFallbackKdf)


def test_core_from_settings_session_storage():
    s = CryptoSettings(argon2_opslimit=1, argon2_memlimit=8192, min_password_length=12)
    core = SecureMessagingCore.from_settings(s, salt_store=InMemorySaltStore())
    assert isinstance(core.key_storage, SessionKeyStorage)
    assert core.vault.min_password_length == 12
    with pytest.raises(InvalidInput):
        core.seal_private_key(b"\x01" * 32, "elevenchars")


def test_core_from_settings_file_storage_warns(tmp_path):
    s = CryptoSettings(key_storage="file", key_storage_path=str(tmp_path / "k.json"))
    with pytest.warns(RuntimeWarning):
        core = SecureMessagingCore.from_settings(s, salt_store=InMemorySaltStore())
    assert isinstance(core.key_storage, FallbackFileKeyStorage)


def test_configure_logging_is_idempotent():
    logger = configure_logging("debug")
    configure_logging("debug")
    ours = [h for h in logger.handlers if getattr(h, "_sealkit", False)]
    assert len(ours) == 1
    assert logger.level == logging.DEBUG
    logger.setLevel(logging.NOTSET)


def test_core_from_settings_applies_log_level():
    s = load_settings({"SEALKIT_LOG_LEVEL": "DEBUG"}, auto_dotenv=False)
    logger = logging.getLogger("sealkit")
    try:
        SecureMessagingCore.from_settings(s, salt_store=InMemorySaltStore())
        assert logger.level == logging.DEBUG
        assert logger.isEnabledFor(logging.DEBUG)
    finally:
        logger.setLevel(logging.NOTSET)
