"""Storage configuration schemas for multistore."""

from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from multistore.core.exceptions import ValidationError
from multistore.providers.registry import PLACEHOLDER_PATTERN

SUPPORTED_SIGNATURE_VERSIONS = ("v4",)


class StorageConfigInput(BaseModel):
    """A storage configuration as submitted by an operator, before encryption."""

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str = Field(..., min_length=1, description="Human-readable name")
    provider: str = Field(..., min_length=1, description="Provider registry key")
    endpoint: str = Field(
        ..., min_length=1, description="Endpoint host with placeholders substituted"
    )
    region: str = Field(..., min_length=1, description="Signing region")
    port: int = Field(..., ge=1, le=65535, description="Endpoint port")
    access_key_id: str = Field(..., min_length=1, description="Access key ID")
    secret_access_key: str = Field(
        ..., min_length=1, description="Secret access key", repr=False
    )
    bucket_name: str = Field(..., min_length=1, description="Bucket name")
    use_ssl: bool = Field(True, alias="useSSL", description="Use HTTPS")
    path_style: bool = Field(False, description="Use path-style addressing")
    signature_version: str = Field("v4", description="Request signature version")

    @field_validator("endpoint")
    @classmethod
    def _endpoint_is_resolved(cls, value: str) -> str:
        if "://" in value:
            raise ValueError("endpoint must be a host name without a scheme; use useSSL")
        placeholders = PLACEHOLDER_PATTERN.findall(value)
        if placeholders:
            names = ", ".join(f"[{name}]" for name in placeholders)
            raise ValueError(f"endpoint still contains placeholders: {names}")
        host = value.rstrip("/")
        if ":" in host:
            raise ValueError("endpoint must not include a port; use port")
        if "/" in host:
            raise ValueError("endpoint must be a host name without a path")
        return host


class StorageConfig(BaseModel):
    """A persisted storage configuration. Credentials hold encrypted blobs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    provider: str
    provider_name: str
    endpoint: str
    region: str
    port: int
    access_key_id: str = Field(..., description="base64(iv || ciphertext)", repr=False)
    secret_access_key: str = Field(
        ..., description="base64(iv || ciphertext)", repr=False
    )
    bucket_name: str
    use_ssl: bool = Field(True, alias="useSSL")
    path_style: bool = False
    signature_version: str = "v4"
    created_at: datetime
    encrypted: bool = True


def validate_storage_config(
    data: Mapping[str, Any],
    defaults: Optional[Mapping[str, Any]] = None,
) -> StorageConfigInput:
    """Validate a submitted configuration, filling gaps from provider defaults.

    Empty or missing values are taken from ``defaults`` when present there.

    Raises:
        ValidationError: If required fields are missing or invalid
    """
    aliases = {
        field.alias: name
        for name, field in StorageConfigInput.model_fields.items()
        if field.alias
    }
    merged: dict[str, Any] = dict(defaults or {})
    for key, value in data.items():
        key = aliases.get(key, key)
        if value is None or value == "":
            merged.setdefault(key, value)
            continue
        merged[key] = value
    merged = {key: value for key, value in merged.items() if value is not None}

    try:
        config = StorageConfigInput.model_validate(merged)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid storage configuration: {problems}") from e

    if config.signature_version not in SUPPORTED_SIGNATURE_VERSIONS:
        raise ValidationError(
            f"Unsupported signature version '{config.signature_version}'. "
            f"Supported: {', '.join(SUPPORTED_SIGNATURE_VERSIONS)}"
        )

    return config
