# =============================================================================
# In-memory collaborator stores (tests, single-process deployments)
# =============================================================================

from __future__ import annotations

import threading
from typing import Optional

from sealkit.crypto_utils.conversation import WrappedKeyGrant


class InMemorySaltStore:
    """
    One salt per conversation. insert_salt is insert-if-absent under a lock,
    which plays the role of a uniqueness constraint.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._d: dict[str, bytes] = {}

    def get_salt(self, conversation_id: str) -> Optional[bytes]:
        with self._lock:
            return self._d.get(conversation_id)

    def insert_salt(self, conversation_id: str, salt: bytes) -> bool:
        with self._lock:
            if conversation_id in self._d:
                return False
            self._d[conversation_id] = bytes(salt)
            return True


class InMemoryGrantStore:
    """Grants keyed by (conversation_id, user_id); put_grant upserts."""
    def __init__(self):
        self._lock = threading.Lock()
        self._d: dict[tuple[str, str], WrappedKeyGrant] = {}

    def put_grant(self, grant: WrappedKeyGrant) -> None:
        with self._lock:
            self._d[(grant.conversation_id, grant.user_id)] = grant

    def get_grant(self, conversation_id: str, user_id: str) -> Optional[WrappedKeyGrant]:
        with self._lock:
            return self._d.get((conversation_id, user_id))

    def grants_for(self, conversation_id: str) -> list[WrappedKeyGrant]:
        with self._lock:
            return [g for (cid, _), g in self._d.items() if cid == conversation_id]


class InMemoryKeyDirectory:
    """
    User directory record schema: {"public_key": bytes, "encrypted_private_key": str}.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._d: dict[str, dict] = {}

    def get_public_key(self, user_id: str) -> Optional[bytes]:
        with self._lock:
            rec = self._d.get(user_id)
        return rec["public_key"] if rec else None

    def get_encrypted_private_key(self, user_id: str) -> Optional[str]:
        with self._lock:
            rec = self._d.get(user_id)
        return rec["encrypted_private_key"] if rec else None

    def set_keys(self, user_id: str, public_key: bytes, encrypted_private_key_b64: str) -> None:
        with self._lock:
            self._d[user_id] = {
                "public_key": bytes(public_key),
                "encrypted_private_key": str(encrypted_private_key_b64),
            }
