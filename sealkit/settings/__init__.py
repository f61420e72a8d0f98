"""
Runtime configuration for sealkit.

Resolution order for every SEALKIT_* variable:
  1) explicit mapping passed to load_settings()
  2) os.environ (optionally primed from a .env file)
  3) model default
"""

from __future__ import annotations

import logging
import os
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv
from nacl.pwhash import argon2id
from pydantic import BaseModel, Field, ValidationError, model_validator

from sealkit.crypto_utils.errors import InvalidInput
from sealkit.crypto_utils.kdf import KeyDerivation, kdf_from_name

ENV_PREFIX = "SEALKIT_"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CryptoSettings(BaseModel):
    model_config = {"extra": "forbid"}

    kdf: Literal["argon2id", "scrypt", "generic-hash"] = "argon2id"
    argon2_opslimit: int = Field(argon2id.OPSLIMIT_INTERACTIVE, ge=argon2id.OPSLIMIT_MIN)
    argon2_memlimit: int = Field(argon2id.MEMLIMIT_INTERACTIVE, ge=argon2id.MEMLIMIT_MIN)
    scrypt_n: int = Field(2**14, ge=2)
    scrypt_r: int = Field(8, ge=1)
    scrypt_p: int = Field(1, ge=1)

    min_password_length: int = Field(8, ge=1)

    key_storage: Literal["session", "file"] = "session"
    key_storage_path: Optional[str] = None

    media_max_bytes: int = Field(10 * 1024 * 1024, gt=0)
    media_key_scheme: Literal["derived", "wrapped"] = "derived"

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_storage(self) -> "CryptoSettings":
        if self.key_storage == "file" and not self.key_storage_path:
            raise ValueError("key_storage='file' requires key_storage_path")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"unknown log level: {self.log_level}")
        return self

    def kdf_strategy(self) -> KeyDerivation:
        """The statically configured password KDF."""
        if self.kdf == "argon2id":
            return kdf_from_name("argon2id", opslimit=self.argon2_opslimit, memlimit=self.argon2_memlimit)
        if self.kdf == "scrypt":
            return kdf_from_name("scrypt", n=self.scrypt_n, r=self.scrypt_r, p=self.scrypt_p)
        return kdf_from_name("generic-hash")


def load_settings(
    mapping: Optional[Mapping[str, str]] = None,
    *,
    auto_dotenv: bool = True,
    dotenv_path: Optional[str] = None,
    dotenv_override: bool = False,
) -> CryptoSettings:
    if auto_dotenv:
        load_dotenv(dotenv_path=dotenv_path, override=dotenv_override)

    explicit = dict(mapping or {})
    values: dict[str, str] = {}
    for name in CryptoSettings.model_fields:
        env_name = ENV_PREFIX + name.upper()
        if env_name in explicit:
            values[name] = explicit[env_name]
        elif env_name in os.environ:
            values[name] = os.environ[env_name]

    try:
        return CryptoSettings(**values)
    except ValidationError as exc:
        raise InvalidInput(f"invalid sealkit settings: {exc}") from exc


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach one stream handler to the "sealkit" logger. Safe to call twice.
    """
    logger = logging.getLogger("sealkit")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_sealkit", False) for h in logger.handlers):
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        h._sealkit = True
        logger.addHandler(h)
    return logger
