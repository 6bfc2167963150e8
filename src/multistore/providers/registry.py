"""Catalog of S3-compatible storage providers.

Each provider is described by a :class:`ProviderDefinition` holding the
endpoint template and connection defaults used to prefill a storage
configuration. Endpoint templates may contain placeholders such as
``[region]``, ``[account_id]`` or ``[namespace]``; substituting them is the
operator's job when the configuration is created. The registry itself only
answers lookups and has no state.

Example:
    >>> provider = resolve("digitalocean")
    >>> provider.fill_endpoint(region="ams3")
    'ams3.digitaloceanspaces.com'
"""

import re
from dataclasses import dataclass
from typing import Any

from multistore.core import get_logger
from multistore.core.exceptions import ProviderNotFoundError

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\[([a-z_]+)\]")


@dataclass(frozen=True)
class ProviderDefinition:
    """Connection template for one S3-compatible provider."""

    key: str
    name: str
    description: str
    endpoint: str
    region: str
    port: int = 443
    use_ssl: bool = True
    path_style: bool = False
    signature_version: str = "v4"

    @property
    def placeholders(self) -> tuple[str, ...]:
        """Placeholder names the operator must fill in the endpoint."""
        return tuple(PLACEHOLDER_PATTERN.findall(self.endpoint))

    def fill_endpoint(self, **values: str) -> str:
        """Substitute endpoint placeholders with operator-supplied values.

        ``region`` defaults to the provider's default region when not given.

        Raises:
            ValueError: If a placeholder has no value
        """
        values.setdefault("region", self.region)

        def _replace(match: re.Match) -> str:
            name = match.group(1)
            value = values.get(name)
            if not value:
                raise ValueError(
                    f"Missing value for endpoint placeholder '[{name}]' "
                    f"of provider '{self.key}'"
                )
            return value

        return PLACEHOLDER_PATTERN.sub(_replace, self.endpoint)

    def defaults(self) -> dict[str, Any]:
        """Values used to prefill a configuration form for this provider."""
        return {
            "provider": self.key,
            "endpoint": self.endpoint,
            "region": self.region,
            "port": self.port,
            "use_ssl": self.use_ssl,
            "path_style": self.path_style,
            "signature_version": self.signature_version,
        }


PROVIDERS: dict[str, ProviderDefinition] = {
    provider.key: provider
    for provider in (
        ProviderDefinition(
            key="cubbit",
            name="Cubbit",
            description="Distributed cloud storage with geo-redundancy",
            endpoint="s3.cubbit.eu",
            region="eu-central-1",
        ),
        ProviderDefinition(
            key="aws",
            name="AWS S3",
            description="Amazon Web Services S3",
            endpoint="s3.amazonaws.com",
            region="us-east-1",
        ),
        ProviderDefinition(
            key="digitalocean",
            name="DigitalOcean Spaces",
            description="S3-compatible object storage from DigitalOcean",
            endpoint="[region].digitaloceanspaces.com",
            region="nyc3",
        ),
        ProviderDefinition(
            key="backblaze",
            name="Backblaze B2",
            description="Low-cost B2 cloud storage",
            endpoint="s3.[region].backblazeb2.com",
            region="us-west-002",
        ),
        ProviderDefinition(
            key="wasabi",
            name="Wasabi",
            description="Hot cloud storage",
            endpoint="s3.[region].wasabisys.com",
            region="us-east-1",
        ),
        ProviderDefinition(
            key="cloudflare",
            name="Cloudflare R2",
            description="Zero-egress cloud storage",
            endpoint="[account_id].r2.cloudflarestorage.com",
            region="auto",
        ),
        ProviderDefinition(
            key="vultr",
            name="Vultr Object Storage",
            description="High-performance object storage",
            endpoint="[region].vultrobjects.com",
            region="ewr1",
        ),
        ProviderDefinition(
            key="linode",
            name="Linode Object Storage",
            description="Akamai-powered object storage",
            endpoint="[region].linodeobjects.com",
            region="us-east-1",
        ),
        ProviderDefinition(
            key="ovh",
            name="OVH Cloud Storage",
            description="European cloud storage provider",
            endpoint="s3.[region].cloud.ovh.net",
            region="gra",
        ),
        ProviderDefinition(
            key="minio",
            name="MinIO",
            description="Self-hosted S3-compatible storage",
            endpoint="localhost",
            region="us-east-1",
            port=9000,
            use_ssl=False,
            path_style=True,
        ),
        ProviderDefinition(
            key="oracle",
            name="Oracle Cloud Storage",
            description="Oracle Cloud Infrastructure Object Storage",
            endpoint="[namespace].compat.objectstorage.[region].oraclecloud.com",
            region="us-phoenix-1",
        ),
        ProviderDefinition(
            key="ibm",
            name="IBM Cloud Object Storage",
            description="IBM Cloud storage service",
            endpoint="s3.[region].cloud-object-storage.appdomain.cloud",
            region="us-south",
        ),
        ProviderDefinition(
            key="scaleway",
            name="Scaleway Object Storage",
            description="European cloud object storage",
            endpoint="s3.[region].scw.cloud",
            region="fr-par",
        ),
    )
}


def resolve(provider_key: str) -> ProviderDefinition:
    """Look up a provider definition by key.

    Raises:
        ProviderNotFoundError: If the key is not registered
    """
    try:
        return PROVIDERS[provider_key]
    except KeyError:
        logger.warning("Unknown storage provider", provider=provider_key)
        raise ProviderNotFoundError(
            f"Unknown storage provider '{provider_key}'. "
            f"Known providers: {', '.join(PROVIDERS)}"
        ) from None


def list_providers() -> list[ProviderDefinition]:
    """Return every registered provider in catalog order."""
    return list(PROVIDERS.values())
