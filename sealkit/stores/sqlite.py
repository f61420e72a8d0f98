# sqlite.py - SQLite collaborator stores
#
# Reference backends for the salt, grant and directory contracts. Each call
# opens its own connection so the stores are safe to share across threads.
# The conversation_salts primary key is the uniqueness constraint that makes
# salt creation idempotent.

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Optional

from sealkit.crypto_utils.conversation import WrappedKeyGrant
from sealkit.crypto_utils.provider import b64_decode, b64_encode

logger = logging.getLogger(__name__)


# ----------------------------------------
# Connection Helper
# ----------------------------------------
class SqliteDatabase:
    def __init__(self, path: str, *, timeout: float = 30.0):
        self.path = str(path)
        self.timeout = float(timeout)
        d = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(d, exist_ok=True)
        self.init_schema()

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        conn = self.connect()
        try:
            cur = conn.cursor()
            cur.execute("""
                CREATE TABLE IF NOT EXISTS conversation_salts (
                    conversation_id TEXT PRIMARY KEY,
                    salt TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS conversation_keys (
                    conversation_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    encrypted_symmetric_key TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (conversation_id, user_id)
                );
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS user_keys (
                    user_id TEXT PRIMARY KEY,
                    public_key TEXT NOT NULL,
                    encrypted_private_key TEXT NOT NULL
                );
            """)
            conn.commit()
        finally:
            conn.close()
        logger.debug("sqlite schema ready at %s", self.path)


# ----------------------------------------
# Salts
# ----------------------------------------
class SqliteSaltStore:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def get_salt(self, conversation_id: str) -> Optional[bytes]:
        conn = self.db.connect()
        try:
            row = conn.execute(
                "SELECT salt FROM conversation_salts WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        finally:
            conn.close()
        return b64_decode(row["salt"]) if row else None

    def insert_salt(self, conversation_id: str, salt: bytes) -> bool:
        conn = self.db.connect()
        try:
            conn.execute(
                "INSERT INTO conversation_salts (conversation_id, salt) VALUES (?, ?)",
                (conversation_id, b64_encode(salt)),
            )
            conn.commit()
            return True
        except sqlite3.IntegrityError:
            # Another writer created the salt first.
            return False
        finally:
            conn.close()


# ----------------------------------------
# Wrapped key grants
# ----------------------------------------
class SqliteGrantStore:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def put_grant(self, grant: WrappedKeyGrant) -> None:
        conn = self.db.connect()
        try:
            conn.execute("""
                INSERT INTO conversation_keys (conversation_id, user_id, encrypted_symmetric_key)
                VALUES (?, ?, ?)
                ON CONFLICT (conversation_id, user_id)
                DO UPDATE SET encrypted_symmetric_key = excluded.encrypted_symmetric_key,
                              updated_at = CURRENT_TIMESTAMP
            """, (grant.conversation_id, grant.user_id, b64_encode(grant.wrapped_key)))
            conn.commit()
        finally:
            conn.close()

    def get_grant(self, conversation_id: str, user_id: str) -> Optional[WrappedKeyGrant]:
        conn = self.db.connect()
        try:
            row = conn.execute("""
                SELECT conversation_id, user_id, encrypted_symmetric_key
                FROM conversation_keys
                WHERE conversation_id = ? AND user_id = ?
            """, (conversation_id, user_id)).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return WrappedKeyGrant(
            conversation_id=row["conversation_id"],
            user_id=row["user_id"],
            wrapped_key=b64_decode(row["encrypted_symmetric_key"]),
        )


# ----------------------------------------
# User directory
# ----------------------------------------
class SqliteKeyDirectory:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def get_public_key(self, user_id: str) -> Optional[bytes]:
        conn = self.db.connect()
        try:
            row = conn.execute("SELECT public_key FROM user_keys WHERE user_id = ?", (user_id,)).fetchone()
        finally:
            conn.close()
        return b64_decode(row["public_key"]) if row else None

    def get_encrypted_private_key(self, user_id: str) -> Optional[str]:
        conn = self.db.connect()
        try:
            row = conn.execute(
                "SELECT encrypted_private_key FROM user_keys WHERE user_id = ?", (user_id,)
            ).fetchone()
        finally:
            conn.close()
        return row["encrypted_private_key"] if row else None

    def set_keys(self, user_id: str, public_key: bytes, encrypted_private_key_b64: str) -> None:
        conn = self.db.connect()
        try:
            conn.execute("""
                INSERT INTO user_keys (user_id, public_key, encrypted_private_key)
                VALUES (?, ?, ?)
                ON CONFLICT (user_id)
                DO UPDATE SET public_key = excluded.public_key,
                              encrypted_private_key = excluded.encrypted_private_key
            """, (user_id, b64_encode(public_key), encrypted_private_key_b64))
            conn.commit()
        finally:
            conn.close()
