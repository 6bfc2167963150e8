"""Host and URL construction for virtual-host and path-style addressing."""

from multistore.storage_config import ResolvedStorageConfig


def resolve_host(config: ResolvedStorageConfig) -> str:
    """Return the ``Host`` header value for a configuration.

    Virtual-host style puts the bucket in the host name
    (``bucket.endpoint``); path-style uses the bare endpoint. A port is
    appended only when it differs from the scheme's default, matching what an
    HTTP client sends on the wire.
    """
    host = config.endpoint if config.path_style else f"{config.bucket_name}.{config.endpoint}"
    if not config.uses_default_port:
        host = f"{host}:{config.port}"
    return host


def resolve_path(config: ResolvedStorageConfig, resource_path: str) -> str:
    """Return the request path for a resource, including the bucket if path-style."""
    path = resource_path if resource_path.startswith("/") else f"/{resource_path}"
    if config.path_style:
        path = f"/{config.bucket_name}{path}"
    return path


def build_url(config: ResolvedStorageConfig, path: str, query_string: str = "") -> str:
    """Assemble the full request URL from an already-canonical path and query."""
    url = f"{config.scheme}://{resolve_host(config)}{path}"
    if query_string:
        url = f"{url}?{query_string}"
    return url
