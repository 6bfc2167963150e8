"""Session-scoped storage for the credential encryption key.

The key must outlive a single process only as long as the user's login
session does, and must never reach durable storage. Two stores are provided:

- :class:`MemorySessionKeyStore` keeps the key for the lifetime of the process.
- :class:`RuntimeDirSessionKeyStore` keeps it in a ``0600`` file under the
  user's runtime directory (``$XDG_RUNTIME_DIR``), which is a tmpfs removed
  when the session ends.

Keys are exchanged as JSON Web Keys so a stored key is self-describing.
"""

import base64
import json
import os
from pathlib import Path
from typing import Optional, Protocol

from multistore.core import get_logger

logger = get_logger(__name__)

KEY_FILE_NAME = "session.jwk"
KEY_LENGTH = 32


def key_to_jwk(key: bytes) -> dict:
    """Export a raw AES-256 key as an ``oct`` JSON Web Key."""
    encoded = base64.urlsafe_b64encode(key).rstrip(b"=").decode("ascii")
    return {
        "kty": "oct",
        "alg": "A256GCM",
        "k": encoded,
        "ext": True,
        "key_ops": ["encrypt", "decrypt"],
    }


def key_from_jwk(jwk: dict) -> bytes:
    """Import a raw AES-256 key from an ``oct`` JSON Web Key.

    Raises:
        ValueError: If the JWK is not a 256-bit symmetric key
    """
    if not isinstance(jwk, dict):
        raise ValueError("JWK must be a JSON object")
    if jwk.get("kty") != "oct" or not isinstance(jwk.get("k"), str):
        raise ValueError("JWK is not a symmetric (oct) key")
    encoded = jwk["k"]
    padding = "=" * (-len(encoded) % 4)
    key = base64.urlsafe_b64decode(encoded + padding)
    if len(key) != KEY_LENGTH:
        raise ValueError(f"Expected a {KEY_LENGTH * 8}-bit key, got {len(key) * 8} bits")
    return key


class SessionKeyStore(Protocol):
    """Storage for the session key that does not survive the session."""

    def load(self) -> Optional[bytes]: ...

    def store(self, key: bytes) -> None: ...

    def clear(self) -> None: ...


class MemorySessionKeyStore:
    """Keeps the session key in process memory only."""

    def __init__(self) -> None:
        self._key: Optional[bytes] = None

    def load(self) -> Optional[bytes]:
        return self._key

    def store(self, key: bytes) -> None:
        self._key = key

    def clear(self) -> None:
        self._key = None


class RuntimeDirSessionKeyStore:
    """Keeps the session key in a private file under the runtime directory."""

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)
        self._path = self._directory / KEY_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[bytes]:
        if not self._path.exists():
            return None
        try:
            jwk = json.loads(self._path.read_text(encoding="utf-8"))
            return key_from_jwk(jwk)
        except (OSError, ValueError) as e:
            # An unreadable key is a lost key; a fresh one will replace it.
            logger.warning(
                "Discarding unreadable session key", path=str(self._path), error=str(e)
            )
            return None

    def store(self, key: bytes) -> None:
        self._directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        payload = json.dumps(key_to_jwk(key)).encode("utf-8")
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        logger.debug("Session key stored", path=str(self._path))

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
