"""Provider-agnostic client for S3-compatible object storage.

This package signs requests with AWS Signature Version 4 and talks to any
S3-compatible provider (AWS, Cubbit, MinIO, Backblaze B2, Cloudflare R2 and
others) over plain HTTP. Credentials are stored encrypted with a key scoped
to the user session.

Key Features:
    - Catalog of S3-compatible providers with connection defaults
    - AES-256-GCM credential vault with a session-scoped key
    - Byte-exact SigV4 request signing
    - Async upload, download, list and delete with progress reporting
    - Named configurations with an active storage pointer

Recommended Usage:
    Use the storage manager from this module for most operations:

    >>> from multistore import StorageManager
    >>> manager = StorageManager.from_settings()
    >>> config = manager.add_config({
    ...     "name": "Backups",
    ...     "provider": "digitalocean",
    ...     "endpoint": "ams3.digitaloceanspaces.com",
    ...     "region": "ams3",
    ...     "accessKeyId": "...",
    ...     "secretAccessKey": "...",
    ...     "bucketName": "backups",
    ... })
    >>> manager.activate(config.id)
    >>> records = await manager.list("2024/")

Advanced Usage:
    Import specific modules to sign or transfer without the manager:

    >>> from multistore.signing import RequestSigner
    >>> from multistore.objectstorage import TransferEngine
"""

__version__ = "0.1.0"

from .configuration import ConfigurationStore, JsonFileStateStore, MemoryStateStore
from .core.exceptions import (
    ConfigurationNotFoundError,
    CryptoError,
    DecryptionError,
    EncryptionError,
    MultistoreError,
    NoActiveStorageError,
    ProviderNotFoundError,
    ResponseParseError,
    SigningError,
    TransferError,
    ValidationError,
)
from .objectstorage import (
    DeleteResult,
    FileRecord,
    ProgressStream,
    TransferEngine,
    TransferProgress,
    UploadResult,
)
from .providers import PROVIDERS, ProviderDefinition, list_providers, resolve
from .schemas import StorageConfig, StorageConfigInput, validate_storage_config
from .signing import RequestSigner, SignedRequest
from .storage_config import ResolvedStorageConfig

# Unified interface (recommended)
from .unified import StorageManager
from .vault import CredentialVault

__all__ = [
    # Unified interface
    "StorageManager",
    # Configurations
    "ConfigurationStore",
    "JsonFileStateStore",
    "MemoryStateStore",
    "StorageConfig",
    "StorageConfigInput",
    "ResolvedStorageConfig",
    "validate_storage_config",
    # Providers
    "PROVIDERS",
    "ProviderDefinition",
    "list_providers",
    "resolve",
    # Credentials and signing
    "CredentialVault",
    "RequestSigner",
    "SignedRequest",
    # Transfers
    "TransferEngine",
    "FileRecord",
    "UploadResult",
    "DeleteResult",
    "TransferProgress",
    "ProgressStream",
    # Errors
    "MultistoreError",
    "ValidationError",
    "SigningError",
    "ProviderNotFoundError",
    "CryptoError",
    "EncryptionError",
    "DecryptionError",
    "ConfigurationNotFoundError",
    "NoActiveStorageError",
    "TransferError",
    "ResponseParseError",
]
