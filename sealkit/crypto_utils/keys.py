# =============================================================================
# Identity keypairs (X25519, public-key encryption only)
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import x25519

from .errors import CryptoUnavailable, InvalidInput
from .provider import CryptoProvider, b64_decode, b64_encode, default_provider

logger = logging.getLogger(__name__)

KEY_BYTES = 32


@dataclass(frozen=True)
class IdentityKeyPair:
    """
    Long-lived keypair used to receive key material.

    - public_key: raw 32-byte X25519 public key (shared)
    - private_key: raw 32-byte X25519 private key (never leaves the user unsealed)
    """
    public_key: bytes
    private_key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.public_key) != KEY_BYTES or len(self.private_key) != KEY_BYTES:
            raise InvalidInput("identity keys must be 32 bytes")

    def public_key_b64(self) -> str:
        return b64_encode(self.public_key)

    @classmethod
    def from_private_key(cls, private_key: bytes) -> "IdentityKeyPair":
        priv = _load_x25519_priv(private_key)
        return cls(public_key=_raw_public(priv.public_key()), private_key=bytes(private_key))


# =============================================================================
# Raw key serialization
# =============================================================================

def _raw_public(key: x25519.X25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(key: x25519.X25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _load_x25519_priv(raw: bytes) -> x25519.X25519PrivateKey:
    if not isinstance(raw, (bytes, bytearray)) or len(raw) != KEY_BYTES:
        raise InvalidInput("invalid X25519 private key length")
    return x25519.X25519PrivateKey.from_private_bytes(bytes(raw))


def load_public_key(key: Union[bytes, str]) -> bytes:
    """
    Validate a public key given as raw bytes or base64 and return the raw 32 bytes.
    """
    raw = b64_decode(key) if isinstance(key, str) else key
    if not isinstance(raw, (bytes, bytearray)) or len(raw) != KEY_BYTES:
        raise InvalidInput("invalid X25519 public key length")
    # Round-trip through the library to reject anything it would refuse later.
    return _raw_public(x25519.X25519PublicKey.from_public_bytes(bytes(raw)))


def serialize_public_key(key: bytes) -> str:
    return b64_encode(load_public_key(key))


# =============================================================================
# Service
# =============================================================================

class KeyPairService:
    """Stateless generator of identity keypairs."""

    def __init__(self, provider: Optional[CryptoProvider] = None):
        self.provider = default_provider(provider)

    def generate(self) -> IdentityKeyPair:
        try:
            priv = x25519.X25519PrivateKey.generate()
            pair = IdentityKeyPair(public_key=_raw_public(priv.public_key()), private_key=_raw_private(priv))
        except InvalidInput:
            raise
        except Exception as exc:
            raise CryptoUnavailable("keypair generation failed") from exc
        logger.debug("generated identity keypair")
        return pair
