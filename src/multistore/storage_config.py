"""Resolved, in-memory storage configuration used to sign requests."""

from dataclasses import dataclass, field

from .schemas import StorageConfig


@dataclass(frozen=True)
class ResolvedStorageConfig:
    """Decrypted snapshot of a storage configuration.

    Exists only in memory, for the duration of an operation. The secret is
    kept out of ``repr`` so it never lands in logs or tracebacks.
    """

    id: str
    name: str
    provider: str
    endpoint: str
    region: str
    port: int
    bucket_name: str
    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)
    use_ssl: bool = True
    path_style: bool = False
    signature_version: str = "v4"

    @property
    def scheme(self) -> str:
        return "https" if self.use_ssl else "http"

    @property
    def uses_default_port(self) -> bool:
        return self.port == (443 if self.use_ssl else 80)

    @classmethod
    def from_record(
        cls, record: StorageConfig, access_key_id: str, secret_access_key: str
    ) -> "ResolvedStorageConfig":
        """Build a snapshot from a persisted record and its decrypted keys."""
        return cls(
            id=record.id,
            name=record.name,
            provider=record.provider,
            endpoint=record.endpoint,
            region=record.region,
            port=record.port,
            bucket_name=record.bucket_name,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            use_ssl=record.use_ssl,
            path_style=record.path_style,
            signature_version=record.signature_version,
        )
