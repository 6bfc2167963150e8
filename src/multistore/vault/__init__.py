"""Credential encryption scoped to the user session."""

from .credentials import CredentialVault
from .key_store import (
    MemorySessionKeyStore,
    RuntimeDirSessionKeyStore,
    SessionKeyStore,
)

__all__ = [
    "CredentialVault",
    "MemorySessionKeyStore",
    "RuntimeDirSessionKeyStore",
    "SessionKeyStore",
]
