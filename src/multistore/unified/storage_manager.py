"""Single entry point wiring providers, vault, store, signer and engine."""

from typing import Optional

import httpx

from multistore.configuration import ConfigurationStore, JsonFileStateStore, StateStore
from multistore.configuration.store import ConfigInput
from multistore.core import get_logger, settings
from multistore.core.config import Settings
from multistore.objectstorage import (
    DeleteResult,
    FileRecord,
    ProgressHandler,
    TransferEngine,
    UploadResult,
)
from multistore.objectstorage.transfer_engine import StateListener, UploadSource
from multistore.providers import ProviderDefinition, list_providers, resolve
from multistore.schemas import StorageConfig
from multistore.signing import RequestSigner
from multistore.storage_config import ResolvedStorageConfig
from multistore.vault import (
    CredentialVault,
    MemorySessionKeyStore,
    RuntimeDirSessionKeyStore,
    SessionKeyStore,
)

logger = get_logger(__name__)


class StorageManager:
    """Configuration management plus the four transfer operations.

    The manager holds no state of its own; everything lives in the
    configuration store and the session key store.

    Example:
        >>> manager = StorageManager.from_settings()
        >>> config = manager.add_config({
        ...     "name": "Local MinIO",
        ...     "provider": "minio",
        ...     "accessKeyId": "minioadmin",
        ...     "secretAccessKey": "minioadmin",
        ...     "bucketName": "scratch",
        ... })
        >>> manager.activate(config.id)
        >>> await manager.upload(b"hello", "greetings/hello.txt")
    """

    def __init__(
        self,
        store: ConfigurationStore,
        signer: Optional[RequestSigner] = None,
        client: Optional[httpx.AsyncClient] = None,
        upload_chunk_size: Optional[int] = None,
        state_listener: Optional[StateListener] = None,
    ):
        self.store = store
        self.signer = signer or RequestSigner()
        self._client = client
        self._upload_chunk_size = upload_chunk_size
        self._state_listener = state_listener
        self.engine = self._engine_for(store.snapshot)

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        key_store: Optional[SessionKeyStore] = None,
        state_store: Optional[StateStore] = None,
    ) -> "StorageManager":
        """Build a manager from application settings and load stored state.

        Args:
            config: Settings to use, the module-level settings if omitted
            client: Shared HTTP client for all operations
            key_store: Session key store; defaults to the runtime directory
                from settings, or memory when there is none
            state_store: Durable state; defaults to the JSON file from settings
        """
        config = config or settings
        if key_store is None:
            if config.session_key_dir is not None:
                key_store = RuntimeDirSessionKeyStore(config.session_key_dir)
            else:
                logger.warning(
                    "No runtime directory available; session key kept in memory"
                )
                key_store = MemorySessionKeyStore()
        if state_store is None:
            state_store = JsonFileStateStore(config.config_path)

        store = ConfigurationStore(CredentialVault(key_store), state_store)
        store.load()
        return cls(store, client=client, upload_chunk_size=config.upload_chunk_size)

    def providers(self) -> list[ProviderDefinition]:
        return list_providers()

    def provider(self, provider_key: str) -> ProviderDefinition:
        return resolve(provider_key)

    def add_config(self, config_input: ConfigInput) -> StorageConfig:
        return self.store.add(config_input)

    def list_configs(self) -> list[StorageConfig]:
        return self.store.list()

    def get_config(self, config_id: str) -> StorageConfig:
        return self.store.get(config_id)

    def delete_config(self, config_id: str) -> None:
        self.store.delete(config_id)

    def activate(self, config_id: str) -> ResolvedStorageConfig:
        return self.store.activate(config_id)

    def deactivate(self) -> None:
        self.store.deactivate()

    def active_config(self) -> Optional[StorageConfig]:
        """Return the active stored configuration, or None."""
        active_id = self.store.active_id
        return self.store.get(active_id) if active_id else None

    async def test_connection(self, config_input: Optional[ConfigInput] = None) -> bool:
        """Check credentials and bucket access.

        Args:
            config_input: An unsaved configuration to try; the active one is
                used when omitted. Nothing is persisted or encrypted.

        Returns:
            True if the provider accepted a one-key listing

        Raises:
            ValidationError: If ``config_input`` is invalid
            NoActiveStorageError: If no input is given and nothing is active
            TransferError: If the provider rejected the request or was unreachable
        """
        if config_input is None:
            return await self.engine.check_connection()

        validated = self.store.validate(config_input)
        draft = ResolvedStorageConfig(
            id="",
            name=validated.name,
            provider=validated.provider,
            endpoint=validated.endpoint,
            region=validated.region,
            port=validated.port,
            bucket_name=validated.bucket_name,
            access_key_id=validated.access_key_id,
            secret_access_key=validated.secret_access_key,
            use_ssl=validated.use_ssl,
            path_style=validated.path_style,
            signature_version=validated.signature_version,
        )
        return await self._engine_for(lambda: draft).check_connection()

    async def upload(
        self,
        file: UploadSource,
        key: str,
        on_progress: Optional[ProgressHandler] = None,
    ) -> UploadResult:
        return await self.engine.upload(file, key, on_progress=on_progress)

    async def download(
        self, key: str, on_progress: Optional[ProgressHandler] = None
    ) -> bytes:
        return await self.engine.download(key, on_progress=on_progress)

    async def list(self, prefix: str = "") -> list[FileRecord]:
        return await self.engine.list(prefix)

    async def delete(self, key: str) -> DeleteResult:
        return await self.engine.delete(key)

    def _engine_for(self, config_source) -> TransferEngine:
        return TransferEngine(
            config_source,
            signer=self.signer,
            client=self._client,
            upload_chunk_size=self._upload_chunk_size,
            state_listener=self._state_listener,
        )
