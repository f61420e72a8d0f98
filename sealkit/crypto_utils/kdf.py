# =============================================================================
# Password-based key derivation strategies
# =============================================================================
"""
The vault is configured with exactly one strategy when it is built. There is
no runtime probing and no silent downgrade: if the configured primitive fails,
the caller gets CryptoUnavailable.

Strategies
- Argon2idKdf: memory-hard, libsodium interactive limits by default.
- ScryptKdf: memory-hard alternative (n, r, p tunable).
- GenericHashFallbackKdf: salted BLAKE2b. Not memory-hard, warns when built.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import nacl.encoding
import nacl.hash
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from nacl.pwhash import argon2id

from .errors import CryptoUnavailable, InvalidInput

logger = logging.getLogger(__name__)

DERIVED_KEY_BYTES = 32
SALT_BYTES = argon2id.SALTBYTES  # 16

_FALLBACK_PERSON = b"sealkit/pw/v1"


@runtime_checkable
class KeyDerivation(Protocol):
    name: str

    def derive(self, password: bytes, salt: bytes) -> bytes: ...


def _check(password: bytes, salt: bytes) -> None:
    if not isinstance(password, (bytes, bytearray)) or not password:
        raise InvalidInput("password must be non-empty bytes")
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_BYTES:
        raise InvalidInput(f"salt must be {SALT_BYTES} bytes")


class Argon2idKdf:
    name = "argon2id"

    def __init__(
        self,
        *,
        opslimit: int = argon2id.OPSLIMIT_INTERACTIVE,
        memlimit: int = argon2id.MEMLIMIT_INTERACTIVE,
    ):
        if opslimit < argon2id.OPSLIMIT_MIN or memlimit < argon2id.MEMLIMIT_MIN:
            raise InvalidInput("argon2id limits below library minimum")
        self.opslimit = int(opslimit)
        self.memlimit = int(memlimit)

    def derive(self, password: bytes, salt: bytes) -> bytes:
        _check(password, salt)
        try:
            return argon2id.kdf(
                DERIVED_KEY_BYTES,
                bytes(password),
                bytes(salt),
                opslimit=self.opslimit,
                memlimit=self.memlimit,
                encoder=nacl.encoding.RawEncoder,
            )
        except Exception as exc:
            raise CryptoUnavailable("argon2id derivation failed") from exc


class ScryptKdf:
    name = "scrypt"

    def __init__(self, *, n: int = 2**14, r: int = 8, p: int = 1):
        if n < 2 or n & (n - 1):
            raise InvalidInput("scrypt n must be a power of two > 1")
        self.n = int(n)
        self.r = int(r)
        self.p = int(p)

    def derive(self, password: bytes, salt: bytes) -> bytes:
        _check(password, salt)
        try:
            kdf = Scrypt(salt=bytes(salt), length=DERIVED_KEY_BYTES, n=self.n, r=self.r, p=self.p)
            return kdf.derive(bytes(password))
        except Exception as exc:
            raise CryptoUnavailable("scrypt derivation failed") from exc


class GenericHashFallbackKdf:
    name = "generic-hash"

    def __init__(self) -> None:
        logger.warning(
            "generic-hash key derivation selected: passwords are NOT protected "
            "by a memory-hard function"
        )

    def derive(self, password: bytes, salt: bytes) -> bytes:
        _check(password, salt)
        try:
            return nacl.hash.blake2b(
                bytes(password),
                digest_size=DERIVED_KEY_BYTES,
                salt=bytes(salt),
                person=_FALLBACK_PERSON,
                encoder=nacl.encoding.RawEncoder,
            )
        except Exception as exc:
            raise CryptoUnavailable("generic hash derivation failed") from exc


def kdf_from_name(name: str, **params) -> KeyDerivation:
    """
    Build the strategy for a configured name. Unknown names are rejected.
    """
    if name == Argon2idKdf.name:
        return Argon2idKdf(**params)
    if name == ScryptKdf.name:
        return ScryptKdf(**params)
    if name == GenericHashFallbackKdf.name:
        if params:
            raise InvalidInput("generic-hash takes no parameters")
        return GenericHashFallbackKdf()
    raise InvalidInput(f"unknown key derivation strategy: {name!r}")
