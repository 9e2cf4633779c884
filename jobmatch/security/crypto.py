"""AES-256-GCM encryption for secrets stored at rest (session cookies).

Blobs are stored as three hex strings: ciphertext, nonce and auth tag.
The key comes from ``KMS_SECRET_KEY`` (32 bytes, hex encoded). Generate one
with ``python main.py keygen``.
"""

from __future__ import annotations

import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel

from jobmatch.errors import CryptoError, TamperDetectedError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12  # 96 bits, the GCM recommendation
TAG_LENGTH = 16

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class EncryptedBlob(BaseModel):
    ciphertext: str
    nonce: str
    auth_tag: str


class CryptoBox:
    """Authenticated symmetric encryption with one process-wide key."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise CryptoError(f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> CryptoBox:
        ok, message = validate_key(key_hex)
        if not ok:
            raise CryptoError(f"Invalid KMS_SECRET_KEY: {message}")
        return cls(bytes.fromhex(key_hex))

    @classmethod
    def from_env(cls, var: str = "KMS_SECRET_KEY") -> CryptoBox:
        key_hex = os.getenv(var, "")
        if not key_hex:
            raise CryptoError(f"{var} environment variable is required for encryption")
        return cls.from_hex(key_hex)

    def encrypt(self, plaintext: str) -> EncryptedBlob:
        if not plaintext:
            raise CryptoError("Cannot encrypt empty plaintext")

        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return EncryptedBlob(
            ciphertext=ciphertext.hex(),
            nonce=nonce.hex(),
            auth_tag=tag.hex(),
        )

    def decrypt(self, blob: EncryptedBlob) -> str:
        if not blob.ciphertext or not blob.nonce or not blob.auth_tag:
            raise CryptoError("Invalid encrypted data: missing required fields")

        try:
            ciphertext = bytes.fromhex(blob.ciphertext)
            nonce = bytes.fromhex(blob.nonce)
            tag = bytes.fromhex(blob.auth_tag)
        except ValueError as e:
            raise CryptoError(f"Invalid encrypted data: {e}") from e

        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise TamperDetectedError("Decryption failed: nonce or auth tag has the wrong length")

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            logger.warning("Secret failed authentication: tampered data or wrong key")
            raise TamperDetectedError(
                "Decryption failed: data has been tampered with or key is incorrect"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError(f"Decryption failed: {e}") from e


def generate_key() -> str:
    """Return a fresh random 32-byte key as hex."""
    return os.urandom(KEY_LENGTH).hex()


def validate_key(key_hex: str | None) -> tuple[bool, str | None]:
    """Check that a key is 64 hex characters. Returns (valid, message)."""
    if not key_hex:
        return False, "Key is empty"
    if not isinstance(key_hex, str):
        return False, "Key must be a string"
    if not _HEX_RE.match(key_hex) or len(key_hex) % 2:
        return False, "Key must be hex encoded"
    if len(key_hex) != KEY_LENGTH * 2:
        return False, f"Key must be exactly {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters)"
    return True, None
