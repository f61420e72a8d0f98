"""
Error taxonomy for the key-management and encryption core.

- InvalidInput: empty or malformed arguments (caller's fault, recoverable).
- DecryptionFailed: authentication failure of any kind. Wrong password,
  wrong key, truncation and tampering all map here with the same message.
- ConversationNotFound / AccessDenied: state and authorization errors.
- CryptoUnavailable: RNG or primitive library failure. Always fatal.
"""

from __future__ import annotations


class SealKitError(Exception):
    """Base class for every error raised by sealkit."""


class InvalidInput(SealKitError, ValueError):
    pass


class DecryptionFailed(SealKitError):
    # One message for every cause, so callers cannot build an oracle from it.
    GENERIC_MESSAGE = "decryption failed"

    def __init__(self, message: str = GENERIC_MESSAGE):
        super().__init__(message)


class ConversationNotFound(SealKitError, LookupError):
    pass


class AccessDenied(SealKitError, PermissionError):
    pass


class CryptoUnavailable(SealKitError, RuntimeError):
    pass
