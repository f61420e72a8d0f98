# =============================================================================
# Crypto provider: one-time library initialization handle
# =============================================================================
"""
The provider is created once at process startup and passed to every
component that needs randomness. Holding a provider means the underlying
library was initialized and its CSPRNG answered a smoke check.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional

import nacl.utils
from nacl.bindings import sodium_init

from .errors import CryptoUnavailable, InvalidInput

logger = logging.getLogger(__name__)


# =============================================================================
# Encoding
# =============================================================================

def b64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def b64_decode(data: str) -> bytes:
    if not isinstance(data, str):
        raise InvalidInput("base64 input must be a string")
    try:
        return base64.b64decode(data.encode("utf-8"), validate=True)
    except (ValueError, TypeError) as exc:
        raise InvalidInput("invalid base64 input") from exc


def ensure_bytes(value, name: str) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise InvalidInput(f"{name} must be bytes")
    return bytes(value)


# =============================================================================
# Provider
# =============================================================================

class CryptoProvider:
    """
    Explicitly initialized handle over the crypto library.

    Use CryptoProvider.initialize() at startup and inject the result.
    Constructing the class directly is reserved for initialize().
    """

    def __init__(self, *, _token: object = None):
        if _token is not _INIT_TOKEN:
            raise InvalidInput("use CryptoProvider.initialize()")

    @classmethod
    def initialize(cls) -> "CryptoProvider":
        try:
            sodium_init()
            sample = nacl.utils.random(16)
        except Exception as exc:
            raise CryptoUnavailable("crypto library initialization failed") from exc
        if len(sample) != 16:
            raise CryptoUnavailable("CSPRNG returned a short read")
        logger.debug("crypto provider initialized")
        return cls(_token=_INIT_TOKEN)

    def random(self, n: int) -> bytes:
        if not isinstance(n, int) or n <= 0:
            raise InvalidInput("random byte count must be a positive int")
        try:
            out = nacl.utils.random(n)
        except Exception as exc:
            raise CryptoUnavailable("CSPRNG failure") from exc
        if len(out) != n:
            raise CryptoUnavailable("CSPRNG returned a short read")
        return out


_INIT_TOKEN = object()


def default_provider(provider: Optional[CryptoProvider]) -> CryptoProvider:
    return provider if provider is not None else CryptoProvider.initialize()
