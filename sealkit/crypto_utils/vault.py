# =============================================================================
# Private key vault: password sealing and storage discipline
# =============================================================================
"""
Sealed format
- salt(16) || nonce(24) || XSalsa20-Poly1305(private_key)
- key = KDF(password, salt), KDF fixed when the vault is built

Storage discipline
- The sealed blob is the only form of a private key allowed to persist.
- An unsealed key lives in an UnlockedKeySession and is zero-filled on close().
- SessionKeyStorage keeps the sealed blob in process memory (default).
- FallbackFileKeyStorage writes the sealed blob to disk and warns loudly
  every time it is selected.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import warnings
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, runtime_checkable

from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .errors import CryptoUnavailable, DecryptionFailed, InvalidInput
from .kdf import SALT_BYTES, Argon2idKdf, KeyDerivation
from .provider import CryptoProvider, b64_decode, b64_encode, default_provider, ensure_bytes

logger = logging.getLogger(__name__)

NONCE_BYTES = SecretBox.NONCE_SIZE  # 24
TAG_BYTES = SecretBox.MACBYTES  # 16

_STORAGE_FILE_VERSION = "sealed-key.v1"


# =============================================================================
# Blob
# =============================================================================

@dataclass(frozen=True)
class EncryptedPrivateKeyBlob:
    salt: bytes
    nonce: bytes
    ciphertext: bytes

    def __post_init__(self) -> None:
        if len(self.salt) != SALT_BYTES:
            raise InvalidInput(f"blob salt must be {SALT_BYTES} bytes")
        if len(self.nonce) != NONCE_BYTES:
            raise InvalidInput(f"blob nonce must be {NONCE_BYTES} bytes")
        if len(self.ciphertext) <= TAG_BYTES:
            raise InvalidInput("blob ciphertext is too short")

    def to_bytes(self) -> bytes:
        return self.salt + self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, raw: bytes) -> "EncryptedPrivateKeyBlob":
        raw = ensure_bytes(raw, "blob")
        head = SALT_BYTES + NONCE_BYTES
        return cls(salt=raw[:SALT_BYTES], nonce=raw[SALT_BYTES:head], ciphertext=raw[head:])

    def to_b64(self) -> str:
        return b64_encode(self.to_bytes())

    @classmethod
    def from_b64(cls, data: str) -> "EncryptedPrivateKeyBlob":
        return cls.from_bytes(b64_decode(data))


# =============================================================================
# Vault
# =============================================================================

class PrivateKeyVault:
    """
    Seals and opens private keys under a password.

    The derivation strategy is injected once. Passwords shorter than
    min_password_length, or equal to a caller-supplied user hint such as the
    account email, are rejected at seal time.
    """

    def __init__(
        self,
        kdf: Optional[KeyDerivation] = None,
        *,
        provider: Optional[CryptoProvider] = None,
        min_password_length: int = 8,
    ):
        self.provider = default_provider(provider)
        self.kdf = kdf if kdf is not None else Argon2idKdf()
        self.min_password_length = int(min_password_length)

    def _password_bytes(self, password: str) -> bytes:
        if not isinstance(password, str) or not password:
            raise InvalidInput("password must be a non-empty string")
        return password.encode("utf-8")

    def seal(
        self,
        private_key: bytes,
        password: str,
        *,
        user_hint: Optional[str] = None,
    ) -> EncryptedPrivateKeyBlob:
        private_key = ensure_bytes(private_key, "private_key")
        if not private_key:
            raise InvalidInput("private_key must be non-empty")
        pw = self._password_bytes(password)
        if len(password) < self.min_password_length:
            raise InvalidInput(f"password must be at least {self.min_password_length} characters")
        if user_hint and password.strip().casefold() == user_hint.strip().casefold():
            raise InvalidInput("password must not equal the account identifier")

        salt = self.provider.random(SALT_BYTES)
        nonce = self.provider.random(NONCE_BYTES)
        key = self.kdf.derive(pw, salt)
        try:
            sealed = SecretBox(key).encrypt(private_key, nonce)
        except CryptoError as exc:
            raise CryptoUnavailable("secretbox encryption failed") from exc

        logger.debug("sealed private key with %s", self.kdf.name)
        return EncryptedPrivateKeyBlob(salt=salt, nonce=nonce, ciphertext=sealed.ciphertext)

    def open(self, blob: EncryptedPrivateKeyBlob, password: str) -> bytes:
        if not isinstance(blob, EncryptedPrivateKeyBlob):
            raise InvalidInput("blob must be an EncryptedPrivateKeyBlob")
        pw = self._password_bytes(password)
        key = self.kdf.derive(pw, blob.salt)
        try:
            return SecretBox(key).decrypt(blob.ciphertext, blob.nonce)
        except CryptoError:
            # Wrong password and corrupted data are indistinguishable on purpose.
            raise DecryptionFailed() from None


# =============================================================================
# Sealed-blob storage
# =============================================================================

@runtime_checkable
class KeyStorage(Protocol):
    def store(self, blob: EncryptedPrivateKeyBlob) -> None: ...
    def load(self) -> Optional[EncryptedPrivateKeyBlob]: ...
    def clear(self) -> None: ...
    def has_stored_key(self) -> bool: ...


class SessionKeyStorage:
    """
    Volatile storage: the sealed blob lives only as long as this object.
    """
    def __init__(self) -> None:
        self._blob: Optional[EncryptedPrivateKeyBlob] = None

    def store(self, blob: EncryptedPrivateKeyBlob) -> None:
        self._blob = blob

    def load(self) -> Optional[EncryptedPrivateKeyBlob]:
        return self._blob

    def clear(self) -> None:
        self._blob = None

    def has_stored_key(self) -> bool:
        return self._blob is not None


def _atomic_write_json(path: str, doc: dict, *, mode: int = 0o600) -> None:
    d = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp.", dir=d)
    try:
        os.chmod(tmp, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


class FallbackFileKeyStorage:
    """
    Degraded-environment storage: the sealed blob persists on disk.

    Only the sealed form is written. The file survives the process, so the
    private key is exposed to offline password guessing if the file leaks.
    """
    WARNING = (
        "SECURITY WARNING: fallback key storage selected; the sealed private key "
        "persists on disk and is exposed to offline password guessing"
    )

    def __init__(self, path: str):
        if not path:
            raise InvalidInput("fallback key storage requires a path")
        self.path = str(path)
        warnings.warn(self.WARNING, RuntimeWarning, stacklevel=2)
        logger.warning("%s (path=%s)", self.WARNING, self.path)

    def store(self, blob: EncryptedPrivateKeyBlob) -> None:
        _atomic_write_json(self.path, {"v": _STORAGE_FILE_VERSION, "blob": blob.to_b64()})

    def load(self) -> Optional[EncryptedPrivateKeyBlob]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            doc = json.load(f)
        if not isinstance(doc, dict) or doc.get("v") != _STORAGE_FILE_VERSION:
            raise InvalidInput("unsupported sealed key file format")
        return EncryptedPrivateKeyBlob.from_b64(doc.get("blob"))

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.unlink(self.path)

    def has_stored_key(self) -> bool:
        return os.path.exists(self.path)


StorageMode = Literal["session", "file"]


def create_key_storage(mode: StorageMode = "session", path: Optional[str] = None) -> KeyStorage:
    if mode == "session":
        return SessionKeyStorage()
    if mode == "file":
        if not path:
            raise InvalidInput("file key storage requires key_storage_path")
        return FallbackFileKeyStorage(path)
    raise InvalidInput(f"unknown key storage mode: {mode!r}")


# =============================================================================
# Unlocked key (volatile)
# =============================================================================

class UnlockedKeySession:
    """
    Holder for an unsealed private key, scoped to a login session.

    close() overwrites the buffer with zeros; any later read raises.
    """

    def __init__(self, private_key: bytes):
        private_key = ensure_bytes(private_key, "private_key")
        if not private_key:
            raise InvalidInput("private_key must be non-empty")
        self._buf: Optional[bytearray] = bytearray(private_key)

    @classmethod
    def unlock(cls, vault: PrivateKeyVault, storage: KeyStorage, password: str) -> "UnlockedKeySession":
        blob = storage.load()
        if blob is None:
            raise InvalidInput("no sealed private key in storage")
        return cls(vault.open(blob, password))

    @property
    def is_open(self) -> bool:
        return self._buf is not None

    @property
    def private_key(self) -> bytes:
        if self._buf is None:
            raise InvalidInput("key session is closed")
        return bytes(self._buf)

    def close(self) -> None:
        if self._buf is not None:
            for i in range(len(self._buf)):
                self._buf[i] = 0
            self._buf = None

    def __enter__(self) -> "UnlockedKeySession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"UnlockedKeySession(open={self.is_open})"
