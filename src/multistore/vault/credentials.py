"""AES-256-GCM encryption of stored credentials.

Credential strings are encrypted with a key scoped to the current session
(see :mod:`multistore.vault.key_store`). Every blob is
``base64(iv || ciphertext || tag)`` with a fresh 96-bit IV per call.
Losing the session key makes earlier blobs permanently unreadable, which
surfaces as :class:`DecryptionError` rather than corrupted plaintext.
"""

import base64
import binascii
import os
import threading
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from multistore.core import get_logger
from multistore.core.exceptions import DecryptionError, EncryptionError

from .key_store import MemorySessionKeyStore, SessionKeyStore

logger = get_logger(__name__)

IV_LENGTH = 12
TAG_LENGTH = 16


class CredentialVault:
    """Encrypts and decrypts credential strings with the session key."""

    def __init__(self, key_store: Optional[SessionKeyStore] = None):
        self._key_store = key_store if key_store is not None else MemorySessionKeyStore()
        self._key: Optional[bytes] = None
        self._lock = threading.Lock()

    def get_or_create_key(self) -> bytes:
        """Return the session key, generating and storing one if absent."""
        with self._lock:
            if self._key is not None:
                return self._key

            key = self._key_store.load()
            if key is None:
                key = AESGCM.generate_key(bit_length=256)
                self._key_store.store(key)
                logger.info("Generated new session encryption key")
            else:
                logger.debug("Restored session encryption key")

            self._key = key
            return key

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a credential string.

        Raises:
            EncryptionError: If the plaintext cannot be encrypted
        """
        try:
            iv = os.urandom(IV_LENGTH)
            ciphertext = AESGCM(self.get_or_create_key()).encrypt(
                iv, plaintext.encode("utf-8"), None
            )
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Credential encryption failed", error=type(e).__name__)
            raise EncryptionError(f"Failed to encrypt data: {e}") from e

        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the blob is malformed, was encrypted under a
                different key, or fails tag verification
        """
        try:
            combined = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            logger.error("Credential blob is not valid base64")
            raise DecryptionError("Failed to decrypt data: invalid encoding") from e

        if len(combined) < IV_LENGTH + TAG_LENGTH:
            logger.error("Credential blob too short", length=len(combined))
            raise DecryptionError("Failed to decrypt data: blob is truncated")

        iv, ciphertext = combined[:IV_LENGTH], combined[IV_LENGTH:]
        try:
            plaintext = AESGCM(self.get_or_create_key()).decrypt(iv, ciphertext, None)
        except InvalidTag as e:
            logger.error("Credential authentication failed; key mismatch or corrupted data")
            raise DecryptionError(
                "Failed to decrypt data: the session key does not match or the data "
                "is corrupted"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Failed to decrypt data: plaintext is not UTF-8") from e

    def reset(self) -> None:
        """Forget the session key, invalidating every blob encrypted with it."""
        with self._lock:
            self._key = None
            self._key_store.clear()
        logger.info("Session encryption key discarded")
