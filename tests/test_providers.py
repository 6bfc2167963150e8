"""Tests for the provider registry."""

import pytest

from multistore.core.exceptions import ProviderNotFoundError, SigningError
from multistore.providers import PROVIDERS, list_providers, resolve


class TestResolve:
    """Test provider lookup."""

    def test_resolve_known_provider(self):
        """Test that a registered key returns its definition."""
        provider = resolve("cubbit")
        assert provider.name == "Cubbit"
        assert provider.endpoint == "s3.cubbit.eu"
        assert provider.region == "eu-central-1"
        assert provider.port == 443
        assert provider.use_ssl is True
        assert provider.path_style is False
        assert provider.signature_version == "v4"

    def test_resolve_unknown_provider(self):
        """Test that an unknown key raises a signing error."""
        with pytest.raises(ProviderNotFoundError) as exc_info:
            resolve("not-a-provider")

        assert isinstance(exc_info.value, SigningError)
        assert "not-a-provider" in str(exc_info.value)

    def test_minio_defaults(self):
        """Test MinIO defaults to plain HTTP, port 9000 and path-style."""
        provider = resolve("minio")
        assert provider.endpoint == "localhost"
        assert provider.port == 9000
        assert provider.use_ssl is False
        assert provider.path_style is True


class TestCatalog:
    """Test the provider catalog as a whole."""

    def test_catalog_keys(self):
        """Test the catalog holds every supported provider in order."""
        assert [provider.key for provider in list_providers()] == [
            "cubbit",
            "aws",
            "digitalocean",
            "backblaze",
            "wasabi",
            "cloudflare",
            "vultr",
            "linode",
            "ovh",
            "minio",
            "oracle",
            "ibm",
            "scaleway",
        ]

    def test_every_provider_signs_with_v4(self):
        """Test only SigV4 providers are registered."""
        assert all(p.signature_version == "v4" for p in PROVIDERS.values())

    def test_definitions_are_immutable(self):
        """Test definitions cannot be modified at runtime."""
        with pytest.raises(AttributeError):
            resolve("aws").region = "eu-west-1"


class TestEndpointTemplates:
    """Test endpoint placeholder helpers."""

    def test_placeholders(self):
        """Test placeholder names are extracted in order."""
        assert resolve("oracle").placeholders == ("namespace", "region")
        assert resolve("cloudflare").placeholders == ("account_id",)
        assert resolve("aws").placeholders == ()

    def test_fill_endpoint_defaults_region(self):
        """Test the provider's region is used when none is given."""
        assert resolve("wasabi").fill_endpoint() == "s3.us-east-1.wasabisys.com"

    def test_fill_endpoint_with_values(self):
        """Test explicit placeholder values are substituted."""
        endpoint = resolve("oracle").fill_endpoint(namespace="acme", region="eu-frankfurt-1")
        assert endpoint == "acme.compat.objectstorage.eu-frankfurt-1.oraclecloud.com"

    def test_fill_endpoint_missing_value(self):
        """Test a placeholder without a value is reported."""
        with pytest.raises(ValueError, match="account_id"):
            resolve("cloudflare").fill_endpoint()

    def test_defaults(self):
        """Test defaults carry the connection settings for a form."""
        defaults = resolve("digitalocean").defaults()
        assert defaults == {
            "provider": "digitalocean",
            "endpoint": "[region].digitaloceanspaces.com",
            "region": "nyc3",
            "port": 443,
            "use_ssl": True,
            "path_style": False,
            "signature_version": "v4",
        }
