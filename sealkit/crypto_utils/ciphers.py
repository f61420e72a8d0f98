# =============================================================================
# Message and media ciphers (XSalsa20-Poly1305 envelopes)
# =============================================================================
"""
Envelope: nonce(24) || ciphertext || tag(16), length = 24 + len(plaintext) + 16.

Each encryption draws a fresh random nonce. Counter nonces are not used
because several senders share one conversation key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .errors import CryptoUnavailable, DecryptionFailed, InvalidInput
from .provider import CryptoProvider, b64_decode, b64_encode, default_provider, ensure_bytes

logger = logging.getLogger(__name__)

NONCE_BYTES = SecretBox.NONCE_SIZE
TAG_BYTES = SecretBox.MACBYTES
KEY_BYTES = SecretBox.KEY_SIZE

DEFAULT_MEDIA_MAX_BYTES = 10 * 1024 * 1024


def envelope_length(plaintext_len: int) -> int:
    return NONCE_BYTES + plaintext_len + TAG_BYTES


def _box(key: bytes) -> SecretBox:
    key = ensure_bytes(key, "key")
    if len(key) != KEY_BYTES:
        raise InvalidInput(f"key must be {KEY_BYTES} bytes")
    return SecretBox(key)


class _EnvelopeCipher:
    def __init__(self, provider: Optional[CryptoProvider] = None):
        self.provider = default_provider(provider)

    def _seal(self, data: bytes, key: bytes) -> bytes:
        box = _box(key)
        nonce = self.provider.random(NONCE_BYTES)
        try:
            return bytes(box.encrypt(data, nonce))
        except CryptoError as exc:
            raise CryptoUnavailable("secretbox encryption failed") from exc

    def _open(self, envelope: bytes, key: bytes) -> bytes:
        box = _box(key)
        envelope = ensure_bytes(envelope, "envelope")
        if len(envelope) < NONCE_BYTES + TAG_BYTES:
            raise DecryptionFailed()
        try:
            return box.decrypt(envelope[NONCE_BYTES:], envelope[:NONCE_BYTES])
        except CryptoError:
            raise DecryptionFailed() from None


class MessageCipher(_EnvelopeCipher):
    def encrypt(self, plaintext: str, key: bytes) -> bytes:
        if not isinstance(plaintext, str):
            raise InvalidInput("plaintext must be a string")
        return self._seal(plaintext.encode("utf-8"), key)

    def decrypt(self, envelope: bytes, key: bytes) -> str:
        raw = self._open(envelope, key)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionFailed() from None

    # Transport form used by the message store
    def encrypt_b64(self, plaintext: str, key: bytes) -> str:
        return b64_encode(self.encrypt(plaintext, key))

    def decrypt_b64(self, envelope_b64: str, key: bytes) -> str:
        try:
            envelope = b64_decode(envelope_b64)
        except InvalidInput:
            raise DecryptionFailed() from None
        return self.decrypt(envelope, key)


@dataclass(frozen=True)
class EncryptedAttachment:
    """
    An encrypted file and its optional encrypted thumbnail.

    mime_type is carried verbatim from the uploader and never inferred.
    size_bytes is the plaintext size of the main file.
    """
    envelope: bytes = field(repr=False)
    mime_type: str
    size_bytes: int
    thumbnail_envelope: Optional[bytes] = field(default=None, repr=False)


class MediaCipher(_EnvelopeCipher):
    """
    Whole-buffer authenticated encryption for files and thumbnails.
    """

    def __init__(
        self,
        provider: Optional[CryptoProvider] = None,
        *,
        max_plaintext_bytes: int = DEFAULT_MEDIA_MAX_BYTES,
    ):
        super().__init__(provider)
        if max_plaintext_bytes <= 0:
            raise InvalidInput("max_plaintext_bytes must be positive")
        self.max_plaintext_bytes = int(max_plaintext_bytes)

    def encrypt(self, data: bytes, key: bytes) -> bytes:
        data = ensure_bytes(data, "data")
        if len(data) > self.max_plaintext_bytes:
            raise InvalidInput(f"media exceeds {self.max_plaintext_bytes} bytes")
        envelope = self._seal(data, key)
        logger.debug("encrypted media buffer (%d bytes)", len(data))
        return envelope

    def decrypt(self, envelope: bytes, key: bytes) -> bytes:
        return self._open(envelope, key)

    def encrypt_attachment(
        self,
        data: bytes,
        key: bytes,
        *,
        mime_type: str,
        thumbnail: Optional[bytes] = None,
    ) -> EncryptedAttachment:
        if not isinstance(mime_type, str) or not mime_type.strip():
            raise InvalidInput("mime_type must be a non-empty string")
        envelope = self.encrypt(data, key)
        thumb_env = self.encrypt(thumbnail, key) if thumbnail is not None else None
        return EncryptedAttachment(
            envelope=envelope,
            mime_type=mime_type,
            size_bytes=len(data),
            thumbnail_envelope=thumb_env,
        )

    def decrypt_attachment(self, attachment: EncryptedAttachment, key: bytes) -> Tuple[bytes, Optional[bytes]]:
        data = self.decrypt(attachment.envelope, key)
        if len(data) != attachment.size_bytes:
            raise DecryptionFailed()
        thumb = None
        if attachment.thumbnail_envelope is not None:
            thumb = self.decrypt(attachment.thumbnail_envelope, key)
        return data, thumb
