# =============================================================================
# Conversation keys: wrapped (Protocol A) and derived (Protocol B)
# =============================================================================
"""
Protocol A: asymmetric key wrapping
- A fresh 32-byte key is minted per conversation.
- Each participant receives a WrappedKeyGrant: the key sealed to their
  identity public key with an ephemeral sender keypair (libsodium sealed box).
- The storage backend only ever sees wrapped keys. It cannot recover the key.

Protocol B: deterministic derivation
- key = BLAKE2b-256(conversation_id ":" sorted participants joined by ":" + Base64(salt))
- The salt is fetched-or-created once per conversation through a SaltStore.
- Anyone who knows the participant list and the salt can compute the key,
  including the server. Use it only where the server is trusted (media).

Stores may be sync or async. Store-touching operations are coroutines and
await collaborator results only when they are awaitable.

Every store-touching operation requires an AccessContext issued by the
caller after its participant check.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

import nacl.encoding
import nacl.hash
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox

from .errors import AccessDenied, ConversationNotFound, DecryptionFailed, InvalidInput
from .keys import KEY_BYTES, load_public_key
from .provider import CryptoProvider, b64_decode, b64_encode, default_provider, ensure_bytes

logger = logging.getLogger(__name__)

SYMMETRIC_KEY_BYTES = 32
CONVERSATION_SALT_BYTES = 32


# =============================================================================
# Records and capability token
# =============================================================================

@dataclass(frozen=True)
class AccessContext:
    """
    Proof that the caller's participant check already happened.

    Issued by the authorization layer; this module only checks that the
    token matches the conversation being touched.
    """
    conversation_id: str
    user_id: str


@dataclass(frozen=True)
class WrappedKeyGrant:
    conversation_id: str
    user_id: str
    wrapped_key: bytes = field(repr=False)

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "wrapped_key": b64_encode(self.wrapped_key),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "WrappedKeyGrant":
        if not isinstance(d, dict):
            raise InvalidInput("grant must be a dict")
        try:
            return cls(
                conversation_id=str(d["conversation_id"]),
                user_id=str(d["user_id"]),
                wrapped_key=b64_decode(d["wrapped_key"]),
            )
        except KeyError as exc:
            raise InvalidInput(f"grant missing field: {exc.args[0]}") from None


# =============================================================================
# Collaborator interfaces (sync or async)
# =============================================================================

@runtime_checkable
class SaltStore(Protocol):
    # insert_salt returns False when a salt already exists (uniqueness conflict)
    def get_salt(self, conversation_id: str) -> Optional[bytes]: ...
    def insert_salt(self, conversation_id: str, salt: bytes) -> bool: ...


@runtime_checkable
class GrantStore(Protocol):
    # put_grant upserts on (conversation_id, user_id)
    def put_grant(self, grant: WrappedKeyGrant) -> None: ...
    def get_grant(self, conversation_id: str, user_id: str) -> Optional[WrappedKeyGrant]: ...


@runtime_checkable
class KeyDirectory(Protocol):
    def get_public_key(self, user_id: str) -> Optional[bytes]: ...
    def set_keys(self, user_id: str, public_key: bytes, encrypted_private_key_b64: str) -> None: ...


async def _maybe_await(x: Any) -> Any:
    return await x if inspect.isawaitable(x) else x


# =============================================================================
# Helpers
# =============================================================================

def _check_key(key: bytes) -> bytes:
    key = ensure_bytes(key, "key")
    if len(key) != SYMMETRIC_KEY_BYTES:
        raise InvalidInput(f"symmetric key must be {SYMMETRIC_KEY_BYTES} bytes")
    return key


def _normalize_participants(participants: Iterable[str]) -> list[str]:
    if isinstance(participants, str):
        raise InvalidInput("participants must be an iterable of ids, not a string")
    out = sorted({str(p) for p in participants or ()})
    if any(not p for p in out):
        raise InvalidInput("participant ids must be non-empty")
    return out


def _check_access(
    access: Optional[AccessContext],
    conversation_id: str,
    participants: Optional[list[str]] = None,
) -> None:
    if not isinstance(access, AccessContext):
        raise AccessDenied("missing access context")
    if access.conversation_id != conversation_id:
        raise AccessDenied("access context is for another conversation")
    if participants is not None and access.user_id not in participants:
        raise AccessDenied("caller is not a participant")


# =============================================================================
# Manager
# =============================================================================

class ConversationKeyManager:
    def __init__(
        self,
        *,
        salt_store: SaltStore,
        grant_store: Optional[GrantStore] = None,
        directory: Optional[KeyDirectory] = None,
        provider: Optional[CryptoProvider] = None,
    ):
        self.provider = default_provider(provider)
        self.salt_store = salt_store
        self.grant_store = grant_store
        self.directory = directory

    # -------------------------------------------------------------------------
    # Protocol A: wrapping
    # -------------------------------------------------------------------------

    def generate_shared_key(self) -> bytes:
        return self.provider.random(SYMMETRIC_KEY_BYTES)

    @staticmethod
    def wrap_key(shared_key: bytes, public_key: bytes) -> bytes:
        shared_key = _check_key(shared_key)
        recipient = PublicKey(load_public_key(public_key))
        try:
            return SealedBox(recipient).encrypt(shared_key)
        except CryptoError as exc:
            raise InvalidInput("participant public key is unusable") from exc

    @staticmethod
    def unwrap_key(wrapped_key: bytes, private_key: bytes) -> bytes:
        wrapped_key = ensure_bytes(wrapped_key, "wrapped_key")
        private_key = ensure_bytes(private_key, "private_key")
        if len(private_key) != KEY_BYTES:
            raise InvalidInput("invalid private key length")
        try:
            key = SealedBox(PrivateKey(private_key)).decrypt(wrapped_key)
        except CryptoError:
            raise DecryptionFailed() from None
        if len(key) != SYMMETRIC_KEY_BYTES:
            raise DecryptionFailed()
        return key

    def _require_grant_store(self) -> GrantStore:
        if self.grant_store is None:
            raise InvalidInput("no grant store configured")
        return self.grant_store

    async def _public_key_for(self, user_id: str) -> bytes:
        if self.directory is None:
            raise InvalidInput("no key directory configured")
        pub = await _maybe_await(self.directory.get_public_key(user_id))
        if pub is None:
            raise InvalidInput(f"participant {user_id!r} has no public key")
        return pub

    async def create_conversation_key(
        self,
        conversation_id: str,
        participant_ids: Iterable[str],
        *,
        access: AccessContext,
    ) -> bytes:
        """
        Mint a fresh key and store one grant per participant.

        Public keys are all fetched and every grant is built before the
        first write, so a missing public key leaves nothing stored.
        """
        participants = _normalize_participants(participant_ids)
        if not participants:
            raise InvalidInput("a conversation needs at least one participant")
        _check_access(access, conversation_id, participants)
        store = self._require_grant_store()

        shared_key = self.generate_shared_key()
        grants = []
        for uid in participants:
            pub = await self._public_key_for(uid)
            grants.append(
                WrappedKeyGrant(conversation_id=conversation_id, user_id=uid, wrapped_key=self.wrap_key(shared_key, pub))
            )
        for grant in grants:
            await _maybe_await(store.put_grant(grant))

        logger.info("created wrapped key for conversation %s (%d grants)", conversation_id, len(grants))
        return shared_key

    async def grant_participant(
        self,
        conversation_id: str,
        user_id: str,
        shared_key: bytes,
        *,
        access: AccessContext,
    ) -> WrappedKeyGrant:
        _check_access(access, conversation_id)
        if not user_id:
            raise InvalidInput("user_id must be non-empty")
        store = self._require_grant_store()
        pub = await self._public_key_for(user_id)
        grant = WrappedKeyGrant(
            conversation_id=conversation_id,
            user_id=str(user_id),
            wrapped_key=self.wrap_key(shared_key, pub),
        )
        await _maybe_await(store.put_grant(grant))
        logger.info("granted conversation %s key to a new participant", conversation_id)
        return grant

    async def unwrap_conversation_key(
        self,
        conversation_id: str,
        private_key: bytes,
        *,
        access: AccessContext,
    ) -> bytes:
        _check_access(access, conversation_id)
        store = self._require_grant_store()
        grant = await _maybe_await(store.get_grant(conversation_id, access.user_id))
        if grant is None:
            raise ConversationNotFound(f"no key grant for conversation {conversation_id!r}")
        return self.unwrap_key(grant.wrapped_key, private_key)

    # -------------------------------------------------------------------------
    # Protocol B: derivation
    # -------------------------------------------------------------------------

    @staticmethod
    def derive_key(conversation_id: str, participants: Iterable[str], salt: bytes) -> bytes:
        if not conversation_id:
            raise InvalidInput("conversation_id must be non-empty")
        members = _normalize_participants(participants)
        if not members:
            raise ConversationNotFound(f"no participants for conversation {conversation_id!r}")
        salt = ensure_bytes(salt, "salt")
        if len(salt) != CONVERSATION_SALT_BYTES:
            raise InvalidInput(f"conversation salt must be {CONVERSATION_SALT_BYTES} bytes")

        seed = f"{conversation_id}:{':'.join(members)}" + b64_encode(salt)
        return nacl.hash.blake2b(
            seed.encode("utf-8"),
            digest_size=SYMMETRIC_KEY_BYTES,
            encoder=nacl.encoding.RawEncoder,
        )

    async def get_or_create_salt(self, conversation_id: str) -> bytes:
        """
        Idempotent under races: the store's uniqueness constraint decides the
        winner and every loser re-reads the winner's salt.
        """
        if not conversation_id:
            raise InvalidInput("conversation_id must be non-empty")
        existing = await _maybe_await(self.salt_store.get_salt(conversation_id))
        if existing is not None:
            return bytes(existing)

        salt = self.provider.random(CONVERSATION_SALT_BYTES)
        inserted = await _maybe_await(self.salt_store.insert_salt(conversation_id, salt))
        if inserted:
            logger.info("created salt for conversation %s", conversation_id)
            return salt

        existing = await _maybe_await(self.salt_store.get_salt(conversation_id))
        if existing is None:
            raise ConversationNotFound(f"salt for conversation {conversation_id!r} vanished after conflict")
        logger.debug("salt conflict for conversation %s resolved by re-read", conversation_id)
        return bytes(existing)

    async def get_or_derive_conversation_key(
        self,
        conversation_id: str,
        participants: Iterable[str],
        *,
        access: AccessContext,
    ) -> bytes:
        members = _normalize_participants(participants)
        if not members:
            raise ConversationNotFound(f"no participants for conversation {conversation_id!r}")
        _check_access(access, conversation_id, members)
        salt = await self.get_or_create_salt(conversation_id)
        return self.derive_key(conversation_id, members, salt)
