"""AWS Signature Version 4 request signing for S3-compatible services.

Every step below follows AWS's published algorithm byte for byte; a single
difference in casing, ordering or a missing newline makes the provider reject
the request with ``SignatureDoesNotMatch``.

The signing flow is:

1. Timestamp the request (``x-amz-date``, basic ISO-8601 in UTC).
2. Hash the payload (``x-amz-content-sha256``).
3. Build the canonical request from method, URI, sorted query string, the
   three signed headers and the payload hash.
4. Build the string to sign from the timestamp, credential scope and the
   canonical request hash.
5. Derive the signing key with the HMAC chain
   ``secret -> date -> region -> service -> aws4_request`` and sign.

The signer holds no credentials and no state besides an injectable clock;
concurrent requests are independent because each carries its own timestamp
and signature.
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

from multistore.core import get_logger
from multistore.core.exceptions import SigningError
from multistore.providers import registry
from multistore.schemas import SUPPORTED_SIGNATURE_VERSIONS
from multistore.storage_config import ResolvedStorageConfig

from .addressing import build_url, resolve_host, resolve_path

logger = get_logger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
TERMINATOR = "aws4_request"
SIGNED_HEADERS = "host;x-amz-content-sha256;x-amz-date"
EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()


def sha256_hex(data: bytes | str) -> str:
    """Lowercase hex SHA-256 digest."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def uri_encode(value: str) -> str:
    """Percent-encode everything except the RFC 3986 unreserved characters."""
    return quote(value, safe="-_.~")


def format_amz_date(now: datetime) -> tuple[str, str]:
    """Return ``(amz_date, date_stamp)`` for a moment in time."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    amz_date = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return amz_date, amz_date[:8]


def canonical_uri(resource_path: str) -> str:
    """Prefix the path with ``/`` if needed; otherwise use it verbatim."""
    return resource_path if resource_path.startswith("/") else f"/{resource_path}"


def canonical_query_string(params: Optional[Mapping[str, Any]]) -> str:
    """Encode and sort query parameters into the canonical query string.

    ``None`` values are dropped; other values are converted with ``str``.
    Sorting is by encoded key, then encoded value, so insertion order never
    affects the result.
    """
    if not params:
        return ""
    pairs = sorted(
        (uri_encode(str(key)), uri_encode(str(value)))
        for key, value in params.items()
        if value is not None
    )
    return "&".join(f"{key}={value}" for key, value in pairs)


def credential_scope(date_stamp: str, region: str) -> str:
    return f"{date_stamp}/{region}/{SERVICE}/{TERMINATOR}"


def build_canonical_request(
    method: str,
    uri: str,
    query_string: str,
    host: str,
    payload_hash: str,
    amz_date: str,
) -> str:
    canonical_headers = (
        f"host:{host}\n"
        f"x-amz-content-sha256:{payload_hash}\n"
        f"x-amz-date:{amz_date}\n"
    )
    return "\n".join(
        [method, uri, query_string, canonical_headers, SIGNED_HEADERS, payload_hash]
    )


def build_string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
    return "\n".join([ALGORITHM, amz_date, scope, sha256_hex(canonical_request)])


def derive_signing_key(
    secret_access_key: str, date_stamp: str, region: str, service: str = SERVICE
) -> bytes:
    """Derive the SigV4 signing key through the HMAC-SHA256 chain."""
    k_date = hmac_sha256(f"AWS4{secret_access_key}".encode("utf-8"), date_stamp)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, TERMINATOR)


@dataclass(frozen=True)
class SignedRequest:
    """Everything needed to send a signed request, plus signing intermediates."""

    method: str
    url: str
    headers: dict[str, str] = field(repr=False)
    authorization: str = field(repr=False)
    amz_date: str
    payload_hash: str
    canonical_request: str = field(repr=False)
    string_to_sign: str = field(repr=False)
    signature: str = field(repr=False)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RequestSigner:
    """Signs S3 requests with AWS Signature Version 4."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now

    def sign(
        self,
        config: ResolvedStorageConfig,
        method: str,
        resource_path: str,
        query_params: Optional[Mapping[str, Any]] = None,
        payload: bytes = b"",
    ) -> SignedRequest:
        """Sign a request for ``resource_path`` within the configured bucket.

        Args:
            config: Resolved configuration with decrypted credentials
            method: HTTP method
            resource_path: Object path relative to the bucket, already
                URI-encoded; used verbatim apart from a leading ``/``
            query_params: Query parameters, encoded and sorted here
            payload: Request body; its SHA-256 is signed

        Returns:
            SignedRequest with headers and URL ready to send

        Raises:
            SigningError: If the configuration cannot produce a valid signature
            ProviderNotFoundError: If the provider key is unknown
        """
        self._check_config(config)

        method = method.upper()
        amz_date, date_stamp = format_amz_date(self._clock())
        payload_hash = sha256_hex(payload)

        uri = canonical_uri(resolve_path(config, resource_path))
        query_string = canonical_query_string(query_params)
        host = resolve_host(config)

        canonical_request = build_canonical_request(
            method, uri, query_string, host, payload_hash, amz_date
        )
        scope = credential_scope(date_stamp, config.region)
        string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)

        signing_key = derive_signing_key(
            config.secret_access_key, date_stamp, config.region
        )
        signature = hmac.new(
            signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        authorization = (
            f"{ALGORITHM} Credential={config.access_key_id}/{scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        )

        logger.debug(
            "Request signed",
            method=method,
            host=host,
            uri=uri,
            amz_date=amz_date,
            scope=scope,
        )

        return SignedRequest(
            method=method,
            url=build_url(config, uri, query_string),
            headers={
                "Host": host,
                "x-amz-date": amz_date,
                "x-amz-content-sha256": payload_hash,
                "Authorization": authorization,
            },
            authorization=authorization,
            amz_date=amz_date,
            payload_hash=payload_hash,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
            signature=signature,
        )

    @staticmethod
    def _check_config(config: ResolvedStorageConfig) -> None:
        registry.resolve(config.provider)

        if config.signature_version not in SUPPORTED_SIGNATURE_VERSIONS:
            raise SigningError(
                f"Unsupported signature version '{config.signature_version}' "
                f"for storage '{config.name}'"
            )
        if not config.access_key_id or not config.secret_access_key:
            raise SigningError(f"Storage '{config.name}' has no usable credentials")
        if not config.region or not config.endpoint or not config.bucket_name:
            raise SigningError(
                f"Storage '{config.name}' is missing region, endpoint or bucket"
            )
