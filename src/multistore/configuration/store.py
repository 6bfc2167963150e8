"""Named storage configurations and the active storage pointer.

Records are held in memory and mirrored to a :class:`StateStore` under two
keys: ``multistore.configs`` (the list of records, credentials encrypted)
and ``multistore.active`` (the id of the active record). Decrypted
credentials only ever live in the :class:`ResolvedStorageConfig` snapshot
of the active record and are dropped when it is switched or deactivated.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from multistore.core import get_logger
from multistore.core.exceptions import (
    ConfigurationNotFoundError,
    NoActiveStorageError,
    ValidationError,
)
from multistore.providers import resolve
from multistore.schemas import StorageConfig, StorageConfigInput, validate_storage_config
from multistore.storage_config import ResolvedStorageConfig
from multistore.vault import CredentialVault

from .persistence import ACTIVE_KEY, CONFIGS_KEY, MemoryStateStore, StateStore

logger = get_logger(__name__)

ConfigInput = Union[StorageConfigInput, Mapping[str, Any]]


class ConfigurationStore:
    """Stores storage configurations and tracks which one is active."""

    def __init__(
        self,
        vault: CredentialVault,
        state_store: Optional[StateStore] = None,
    ):
        """Initialize an empty store; call :meth:`load` to restore state.

        Args:
            vault: Encrypts credentials before they are persisted
            state_store: Durable backend, in-memory if omitted
        """
        self._vault = vault
        self._state = state_store if state_store is not None else MemoryStateStore()
        self._configs: dict[str, StorageConfig] = {}
        self._active_id: Optional[str] = None
        self._resolved: Optional[ResolvedStorageConfig] = None
        self._lock = threading.RLock()

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def validate(self, config_input: ConfigInput) -> StorageConfigInput:
        """Validate a submission, filling gaps from its provider's defaults.

        Raises:
            ValidationError: If the provider key is missing or fields are invalid
            ProviderNotFoundError: If the provider key is unknown
        """
        if isinstance(config_input, StorageConfigInput):
            data: Mapping[str, Any] = config_input.model_dump()
        else:
            data = config_input

        provider_key = data.get("provider")
        if not provider_key:
            raise ValidationError("Invalid storage configuration: provider: Field required")
        provider = resolve(provider_key)
        return validate_storage_config(data, defaults=provider.defaults())

    def add(self, config_input: ConfigInput) -> StorageConfig:
        """Validate, encrypt and persist a new configuration.

        Returns:
            The stored record, with encrypted credentials

        Raises:
            ValidationError: If the configuration is invalid
            ProviderNotFoundError: If the provider key is unknown
            EncryptionError: If the credentials cannot be encrypted
        """
        validated = self.validate(config_input)
        provider = resolve(validated.provider)

        record = StorageConfig(
            id=uuid.uuid4().hex,
            name=validated.name,
            provider=provider.key,
            provider_name=provider.name,
            endpoint=validated.endpoint,
            region=validated.region,
            port=validated.port,
            access_key_id=self._vault.encrypt(validated.access_key_id),
            secret_access_key=self._vault.encrypt(validated.secret_access_key),
            bucket_name=validated.bucket_name,
            use_ssl=validated.use_ssl,
            path_style=validated.path_style,
            signature_version=validated.signature_version,
            created_at=datetime.now(timezone.utc),
            encrypted=True,
        )

        with self._lock:
            self._configs[record.id] = record
            self._save_configs()

        logger.info(
            "Storage configuration added",
            config_id=record.id,
            name=record.name,
            provider=record.provider,
        )
        return record

    def list(self) -> list[StorageConfig]:
        """Return every stored configuration in insertion order."""
        with self._lock:
            return list(self._configs.values())

    def get(self, config_id: str) -> StorageConfig:
        """Return the stored configuration with ``config_id``.

        Raises:
            ConfigurationNotFoundError: If no such configuration exists
        """
        with self._lock:
            try:
                return self._configs[config_id]
            except KeyError:
                raise ConfigurationNotFoundError(
                    f"Storage configuration '{config_id}' not found"
                ) from None

    def delete(self, config_id: str) -> None:
        """Remove a configuration, deactivating it first if it is active.

        Raises:
            ConfigurationNotFoundError: If no such configuration exists
        """
        with self._lock:
            record = self.get(config_id)
            if self._active_id == config_id:
                self._clear_active()
            del self._configs[config_id]
            self._save_configs()

        logger.info("Storage configuration deleted", config_id=config_id, name=record.name)

    def activate(self, config_id: str) -> ResolvedStorageConfig:
        """Decrypt a configuration and make it the active one.

        The pointer only moves once decryption succeeded.

        Raises:
            ConfigurationNotFoundError: If no such configuration exists
            DecryptionError: If the credentials cannot be decrypted
        """
        with self._lock:
            resolved = self._resolve(self.get(config_id))
            self._active_id = config_id
            self._resolved = resolved
            self._state.set(ACTIVE_KEY, config_id)

        logger.info("Storage activated", config_id=config_id, name=resolved.name)
        return resolved

    def deactivate(self) -> None:
        """Clear the active pointer and drop the decrypted snapshot."""
        with self._lock:
            if self._active_id is None:
                return
            config_id = self._active_id
            self._clear_active()
        logger.info("Storage deactivated", config_id=config_id)

    def snapshot(self) -> ResolvedStorageConfig:
        """Return the resolved active configuration for one operation.

        Raises:
            NoActiveStorageError: If no configuration is active
            DecryptionError: If a restored pointer's credentials cannot be
                decrypted with the current session key
        """
        with self._lock:
            if self._active_id is None:
                raise NoActiveStorageError(
                    "No storage configured. Please configure and activate a "
                    "storage provider first."
                )
            if self._resolved is None:
                self._resolved = self._resolve(self._configs[self._active_id])
                logger.debug("Restored active storage", config_id=self._active_id)
            return self._resolved

    def load(self) -> None:
        """Replace in-memory state with what the state store holds.

        Records that no longer validate are skipped. A stored active id
        without a matching record is discarded.
        """
        raw_configs = self._state.get(CONFIGS_KEY) or []
        active_id = self._state.get(ACTIVE_KEY)

        configs: dict[str, StorageConfig] = {}
        for entry in raw_configs:
            try:
                record = StorageConfig.model_validate(entry)
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping invalid stored configuration",
                    error_count=e.error_count(),
                )
                continue
            configs[record.id] = record

        with self._lock:
            self._configs = configs
            self._resolved = None
            self._active_id = None
            if active_id and active_id in configs:
                self._active_id = active_id
            elif active_id:
                logger.warning("Discarding unknown active storage", config_id=active_id)
                self._state.remove(ACTIVE_KEY)

        logger.info(
            "Storage configurations loaded",
            config_count=len(configs),
            active_id=self._active_id,
        )

    def save(self) -> None:
        """Write all records and the active pointer to the state store."""
        with self._lock:
            self._save_configs()
            if self._active_id is None:
                self._state.remove(ACTIVE_KEY)
            else:
                self._state.set(ACTIVE_KEY, self._active_id)

    def _resolve(self, record: StorageConfig) -> ResolvedStorageConfig:
        if record.encrypted:
            access_key_id = self._vault.decrypt(record.access_key_id)
            secret_access_key = self._vault.decrypt(record.secret_access_key)
        else:
            access_key_id = record.access_key_id
            secret_access_key = record.secret_access_key
        return ResolvedStorageConfig.from_record(record, access_key_id, secret_access_key)

    def _clear_active(self) -> None:
        self._active_id = None
        self._resolved = None
        self._state.remove(ACTIVE_KEY)

    def _save_configs(self) -> None:
        self._state.set(
            CONFIGS_KEY,
            [
                record.model_dump(mode="json", by_alias=True)
                for record in self._configs.values()
            ],
        )
