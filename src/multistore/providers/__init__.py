"""Provider registry for S3-compatible storage services."""

from .registry import PROVIDERS, ProviderDefinition, list_providers, resolve

__all__ = ["PROVIDERS", "ProviderDefinition", "list_providers", "resolve"]
