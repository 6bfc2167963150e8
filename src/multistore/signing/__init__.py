"""AWS Signature Version 4 signing."""

from .addressing import build_url, resolve_host, resolve_path
from .sigv4 import (
    EMPTY_PAYLOAD_HASH,
    RequestSigner,
    SignedRequest,
    canonical_query_string,
    derive_signing_key,
    sha256_hex,
    uri_encode,
)

__all__ = [
    "EMPTY_PAYLOAD_HASH",
    "RequestSigner",
    "SignedRequest",
    "build_url",
    "canonical_query_string",
    "derive_signing_key",
    "resolve_host",
    "resolve_path",
    "sha256_hex",
    "uri_encode",
]
