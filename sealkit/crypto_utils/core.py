# =============================================================================
# Exposed operations for the API / UI layer
# =============================================================================
"""
SecureMessagingCore wires the components together and exposes the small set
of operations the application layer calls:

    generate_identity, seal_private_key, open_private_key,
    get_or_derive_conversation_key,
    encrypt_message / decrypt_message, encrypt_media / decrypt_media,
    encrypt_attachment / decrypt_attachment

Trust model
- Message keys: Protocol A (wrapped keys). The server never sees the key.
- Media keys: media_key_scheme, "derived" (Protocol B) by default. The server
  can compute derived keys, so it is trusted for media under that setting.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Literal, Optional, Tuple

from .ciphers import DEFAULT_MEDIA_MAX_BYTES, EncryptedAttachment, MediaCipher, MessageCipher
from .conversation import AccessContext, ConversationKeyManager, GrantStore, KeyDirectory, SaltStore, _maybe_await
from .errors import InvalidInput
from .kdf import KeyDerivation
from .keys import IdentityKeyPair, KeyPairService
from .provider import CryptoProvider, default_provider
from .vault import EncryptedPrivateKeyBlob, KeyStorage, PrivateKeyVault, SessionKeyStorage, create_key_storage

if TYPE_CHECKING:
    from sealkit.settings import CryptoSettings

logger = logging.getLogger(__name__)

MediaKeyScheme = Literal["derived", "wrapped"]


class SecureMessagingCore:
    def __init__(
        self,
        *,
        salt_store: SaltStore,
        grant_store: Optional[GrantStore] = None,
        directory: Optional[KeyDirectory] = None,
        key_storage: Optional[KeyStorage] = None,
        kdf: Optional[KeyDerivation] = None,
        provider: Optional[CryptoProvider] = None,
        min_password_length: int = 8,
        media_max_bytes: int = DEFAULT_MEDIA_MAX_BYTES,
        media_key_scheme: MediaKeyScheme = "derived",
    ):
        if media_key_scheme not in ("derived", "wrapped"):
            raise InvalidInput(f"unknown media key scheme: {media_key_scheme!r}")
        self.provider = default_provider(provider)
        self.keypairs = KeyPairService(self.provider)
        self.vault = PrivateKeyVault(kdf, provider=self.provider, min_password_length=min_password_length)
        self.keys = ConversationKeyManager(
            salt_store=salt_store,
            grant_store=grant_store,
            directory=directory,
            provider=self.provider,
        )
        self.messages = MessageCipher(self.provider)
        self.media = MediaCipher(self.provider, max_plaintext_bytes=media_max_bytes)
        self.key_storage = key_storage if key_storage is not None else SessionKeyStorage()
        self.directory = directory
        self.media_key_scheme = media_key_scheme

    @classmethod
    def from_settings(
        cls,
        settings: "CryptoSettings",
        *,
        salt_store: SaltStore,
        grant_store: Optional[GrantStore] = None,
        directory: Optional[KeyDirectory] = None,
        provider: Optional[CryptoProvider] = None,
    ) -> "SecureMessagingCore":
        from sealkit.settings import configure_logging

        configure_logging(settings.log_level)
        return cls(
            salt_store=salt_store,
            grant_store=grant_store,
            directory=directory,
            key_storage=create_key_storage(settings.key_storage, settings.key_storage_path),
            kdf=settings.kdf_strategy(),
            provider=provider,
            min_password_length=settings.min_password_length,
            media_max_bytes=settings.media_max_bytes,
            media_key_scheme=settings.media_key_scheme,
        )

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def generate_identity(self) -> IdentityKeyPair:
        return self.keypairs.generate()

    def seal_private_key(self, private_key: bytes, password: str, *, user_hint: Optional[str] = None) -> EncryptedPrivateKeyBlob:
        return self.vault.seal(private_key, password, user_hint=user_hint)

    def open_private_key(self, blob: EncryptedPrivateKeyBlob, password: str) -> bytes:
        return self.vault.open(blob, password)

    async def bootstrap_identity(self, user_id: str, password: str, *, user_hint: Optional[str] = None) -> IdentityKeyPair:
        """
        First-login flow: generate, seal, upload the public key and sealed blob
        to the user directory, then keep the sealed blob in key storage. A
        failed upload leaves key storage untouched.
        """
        if not user_id:
            raise InvalidInput("user_id must be non-empty")
        if self.directory is None:
            raise InvalidInput("no key directory configured")
        pair = self.generate_identity()
        blob = self.seal_private_key(pair.private_key, password, user_hint=user_hint)
        await _maybe_await(self.directory.set_keys(user_id, pair.public_key, blob.to_b64()))
        self.key_storage.store(blob)
        logger.info("bootstrapped identity for user %s", user_id)
        return pair

    # -------------------------------------------------------------------------
    # Conversation keys
    # -------------------------------------------------------------------------

    async def get_or_derive_conversation_key(
        self,
        conversation_id: str,
        participants: Iterable[str],
        *,
        access: AccessContext,
    ) -> bytes:
        return await self.keys.get_or_derive_conversation_key(conversation_id, participants, access=access)

    async def media_key(
        self,
        conversation_id: str,
        *,
        access: AccessContext,
        participants: Optional[Iterable[str]] = None,
        private_key: Optional[bytes] = None,
    ) -> bytes:
        """
        Key for a conversation's media under the configured scheme.

        "derived" needs the participant list; "wrapped" needs the caller's
        unsealed private key.
        """
        if self.media_key_scheme == "derived":
            if participants is None:
                raise InvalidInput("derived media keys need the participant list")
            return await self.keys.get_or_derive_conversation_key(conversation_id, participants, access=access)
        if private_key is None:
            raise InvalidInput("wrapped media keys need the caller's private key")
        return await self.keys.unwrap_conversation_key(conversation_id, private_key, access=access)

    # -------------------------------------------------------------------------
    # Payloads
    # -------------------------------------------------------------------------

    def encrypt_message(self, plaintext: str, key: bytes) -> bytes:
        return self.messages.encrypt(plaintext, key)

    def decrypt_message(self, envelope: bytes, key: bytes) -> str:
        return self.messages.decrypt(envelope, key)

    def encrypt_media(self, data: bytes, key: bytes) -> bytes:
        return self.media.encrypt(data, key)

    def decrypt_media(self, envelope: bytes, key: bytes) -> bytes:
        return self.media.decrypt(envelope, key)

    def encrypt_attachment(
        self,
        data: bytes,
        key: bytes,
        *,
        mime_type: str,
        thumbnail: Optional[bytes] = None,
    ) -> EncryptedAttachment:
        return self.media.encrypt_attachment(data, key, mime_type=mime_type, thumbnail=thumbnail)

    def decrypt_attachment(self, attachment: EncryptedAttachment, key: bytes) -> Tuple[bytes, Optional[bytes]]:
        return self.media.decrypt_attachment(attachment, key)
