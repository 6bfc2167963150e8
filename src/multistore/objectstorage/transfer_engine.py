"""Signed HTTP transfers against S3-compatible object storage.

The :class:`TransferEngine` issues the four operations the rest of an
application consumes (upload, download, list, delete) plus a connection
check. Every operation:

1. captures the resolved configuration once, at its start, so activating a
   different configuration mid-transfer never swaps credentials under an
   in-flight request;
2. signs its request with :class:`~multistore.signing.RequestSigner`;
3. makes exactly one attempt. Failures surface as :class:`TransferError`
   with the HTTP status when there was a response; retrying is the caller's
   decision.

Concurrency:
    Operations are coroutines and may run concurrently. The engine has no
    in-flight cap, connection pool or rate limit, and sets no timeouts; each
    operation without an injected client opens its own ``httpx.AsyncClient``.
    There is no cancellation API.
"""

from __future__ import annotations

import mimetypes
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Callable, Optional, Union
from urllib.parse import quote, urlsplit, urlunsplit

import httpx
from opentelemetry import trace

from multistore.core import get_logger, get_tracer, settings
from multistore.core.exceptions import TransferError, ValidationError
from multistore.signing import RequestSigner, SignedRequest
from multistore.storage_config import ResolvedStorageConfig

from .list_response import parse_error_code, parse_list_bucket_result
from .models import DeleteResult, FileRecord, UploadResult
from .operation import TransferOperation, TransferState
from .progress import ProgressHandler, ProgressStream, ProgressTracker

logger = get_logger(__name__)
tracer = get_tracer("multistore.transfer")

UploadSource = Union[str, os.PathLike, bytes, bytearray, memoryview, BinaryIO]
ConfigSource = Callable[[], ResolvedStorageConfig]
StateListener = Callable[[TransferOperation], None]

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Clients drop "." and ".." path segments before sending
DOT_SEGMENTS = {".": "%2E", "..": "%2E%2E"}


def encode_key(key: str) -> str:
    """URI-encode an object key for use as a request path, keeping ``/``."""
    return "/".join(
        DOT_SEGMENTS.get(segment) or quote(segment, safe="-_.~")
        for segment in key.split("/")
    )


def require_key(key: str) -> str:
    """Reject keys that would address the bucket itself."""
    if not key or not key.strip():
        raise ValidationError("Object key must not be empty")
    return key


def read_source(source: UploadSource) -> bytes:
    """Read an upload source fully into memory."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, (str, os.PathLike)):
        return Path(source).read_bytes()
    if hasattr(source, "read"):
        data = source.read()
        if isinstance(data, str):
            raise TypeError("Upload source must be opened in binary mode")
        return bytes(data)
    raise TypeError(f"Unsupported upload source: {type(source).__name__}")


def _sanitize_url(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


class TransferEngine:
    """Executes signed object-storage operations over HTTP."""

    def __init__(
        self,
        config_source: ConfigSource,
        signer: Optional[RequestSigner] = None,
        client: Optional[httpx.AsyncClient] = None,
        upload_chunk_size: Optional[int] = None,
        state_listener: Optional[StateListener] = None,
    ):
        """Initialize the transfer engine.

        Args:
            config_source: Returns the resolved configuration for an operation;
                called once per operation
            signer: Request signer, a default one if omitted
            client: Shared HTTP client; when omitted each operation opens and
                closes its own
            upload_chunk_size: Bytes per upload progress tick
            state_listener: Called on every transfer state transition
        """
        self._config_source = config_source
        self._signer = signer or RequestSigner()
        self._client = client
        self._chunk_size = max(int(upload_chunk_size or settings.upload_chunk_size), 1)
        self._state_listener = state_listener

    async def upload(
        self,
        file: UploadSource,
        key: str,
        on_progress: Optional[ProgressHandler] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """Upload ``file`` to ``key`` with a single signed PUT.

        Args:
            file: Path, bytes or binary file object; read fully into memory
            key: Object key within the bucket
            on_progress: Callback or ProgressStream receiving upload progress
            content_type: Overrides the type guessed from ``key``

        Returns:
            UploadResult with the signed object URL

        Raises:
            TransferError: On network failure or non-2xx response
            ValidationError: If ``key`` is empty
            SigningError: If the configuration cannot be signed
        """
        op = self._begin("upload", key)
        try:
            require_key(key)
            config = self._config_source()
            body = read_source(file)
            tracker = ProgressTracker(len(body), on_progress)
            signed = self._sign(op, config, "PUT", encode_key(key), payload=body)

            headers = dict(signed.headers)
            headers["Content-Type"] = (
                content_type or mimetypes.guess_type(key)[0] or DEFAULT_CONTENT_TYPE
            )
            headers["Content-Length"] = str(len(body))

            logger.info(
                "Uploading object",
                key=key,
                bucket=config.bucket_name,
                size=len(body),
            )
            async with self._traced(op, config, signed) as span:
                async with self._session() as client:
                    op.advance(TransferState.IN_FLIGHT)
                    response = await client.request(
                        "PUT",
                        signed.url,
                        headers=headers,
                        content=self._chunks(body, tracker),
                    )
                self._check_response(op, response, span)

            if tracker.loaded < tracker.total or tracker.total == 0:
                tracker.update(tracker.total)
            op.advance(TransferState.SUCCEEDED)
            logger.info("Object uploaded", key=key, bucket=config.bucket_name)
            return UploadResult(success=True, key=key, url=signed.url)
        except Exception as e:
            self._fail(op, e)
            raise
        finally:
            _close_stream(on_progress)

    async def download(
        self,
        key: str,
        on_progress: Optional[ProgressHandler] = None,
    ) -> bytes:
        """Download ``key`` with a signed GET, streaming the body.

        Progress is reported per received chunk when the response carries a
        ``Content-Length``.

        Returns:
            The raw object bytes

        Raises:
            TransferError: On network failure or non-2xx response
            ValidationError: If ``key`` is empty
        """
        op = self._begin("download", key)
        try:
            require_key(key)
            config = self._config_source()
            signed = self._sign(op, config, "GET", encode_key(key))

            logger.info("Downloading object", key=key, bucket=config.bucket_name)
            async with self._traced(op, config, signed) as span:
                async with self._session() as client:
                    op.advance(TransferState.IN_FLIGHT)
                    async with client.stream(
                        "GET", signed.url, headers=signed.headers
                    ) as response:
                        if not response.is_success:
                            await response.aread()
                        self._check_response(op, response, span)

                        total = _content_length(response)
                        # Without a length there is nothing to compute a percentage from
                        tracker = ProgressTracker(
                            total or 0, on_progress if total is not None else None
                        )
                        # Decoded chunks outgrow a compressed Content-Length
                        encoded = "Content-Encoding" in response.headers
                        payload = bytearray()
                        async for chunk in response.aiter_bytes():
                            payload.extend(chunk)
                            tracker.update(
                                response.num_bytes_downloaded if encoded else len(payload)
                            )

            op.advance(TransferState.SUCCEEDED)
            logger.info(
                "Object downloaded",
                key=key,
                bucket=config.bucket_name,
                size=len(payload),
            )
            return bytes(payload)
        except Exception as e:
            self._fail(op, e)
            raise
        finally:
            _close_stream(on_progress)

    async def delete(self, key: str) -> DeleteResult:
        """Delete ``key`` with a signed DELETE.

        Raises:
            TransferError: On network failure or non-2xx response
            ValidationError: If ``key`` is empty
        """
        op = self._begin("delete", key)
        try:
            require_key(key)
            config = self._config_source()
            signed = self._sign(op, config, "DELETE", encode_key(key))
            async with self._traced(op, config, signed) as span:
                async with self._session() as client:
                    op.advance(TransferState.IN_FLIGHT)
                    response = await client.request(
                        "DELETE", signed.url, headers=signed.headers
                    )
                self._check_response(op, response, span)

            op.advance(TransferState.SUCCEEDED)
            logger.info("Object deleted", key=key, bucket=config.bucket_name)
            return DeleteResult(success=True)
        except Exception as e:
            self._fail(op, e)
            raise

    async def check_connection(self) -> bool:
        """Verify credentials and bucket access with a one-key listing.

        Returns:
            True if the provider accepted the signed request

        Raises:
            TransferError: If the provider rejected it or was unreachable
        """
        await self._list_bucket("check_connection", {"max-keys": "1"})
        return True

    async def list(self, prefix: str = "") -> list[FileRecord]:
        """List objects in the bucket, optionally under ``prefix``.

        Returns:
            File records parsed from the ListBucketResult response

        Raises:
            TransferError: On network failure or non-2xx response
            ResponseParseError: If the response is not valid XML
        """
        query = {"prefix": prefix} if prefix else None
        body = await self._list_bucket("list", query, key=prefix)
        records = parse_list_bucket_result(body)
        logger.info("Objects listed", prefix=prefix, object_count=len(records))
        return records

    async def _list_bucket(
        self, operation: str, query: Optional[dict[str, str]], key: str = ""
    ) -> bytes:
        op = self._begin(operation, key)
        try:
            config = self._config_source()
            signed = self._sign(op, config, "GET", "", query_params=query)
            async with self._traced(op, config, signed) as span:
                async with self._session() as client:
                    op.advance(TransferState.IN_FLIGHT)
                    response = await client.request(
                        "GET", signed.url, headers=signed.headers
                    )
                self._check_response(op, response, span)

            op.advance(TransferState.SUCCEEDED)
            return response.content
        except Exception as e:
            self._fail(op, e)
            raise

    def _begin(self, operation: str, key: str) -> TransferOperation:
        op = TransferOperation(
            operation=operation, key=key, listener=self._state_listener
        )
        op.advance(TransferState.BUILDING_REQUEST)
        return op

    def _sign(
        self,
        op: TransferOperation,
        config: ResolvedStorageConfig,
        method: str,
        resource_path: str,
        query_params: Optional[dict[str, str]] = None,
        payload: bytes = b"",
    ) -> SignedRequest:
        signed = self._signer.sign(
            config, method, resource_path, query_params=query_params, payload=payload
        )
        op.advance(TransferState.SIGNED)
        return signed

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=None) as client:
            yield client

    @asynccontextmanager
    async def _traced(
        self,
        op: TransferOperation,
        config: ResolvedStorageConfig,
        signed: SignedRequest,
    ) -> AsyncIterator[trace.Span]:
        url = _sanitize_url(signed.url)
        with tracer.start_as_current_span(
            f"storage.{op.operation}",
            attributes={
                "http.method": signed.method,
                "http.url": url,
                "storage.provider": config.provider,
                "storage.bucket": config.bucket_name,
            },
        ) as span:
            try:
                yield span
            except httpx.HTTPError as e:
                span.set_status(trace.StatusCode.ERROR, f"Network error: {type(e).__name__}")
                span.record_exception(e)
                raise TransferError(
                    f"{_label(op)} failed: Network error ({e})",
                    operation=op.operation,
                ) from e

    def _check_response(
        self,
        op: TransferOperation,
        response: httpx.Response,
        span: trace.Span,
    ) -> None:
        span.set_attribute("http.status_code", response.status_code)
        if response.is_success:
            return
        error_code = parse_error_code(response.content)
        message = f"{_label(op)} failed: {response.status_code} {response.reason_phrase}"
        if error_code:
            message = f"{message} ({error_code})"
        span.set_status(trace.StatusCode.ERROR, message)
        raise TransferError(
            message,
            operation=op.operation,
            status_code=response.status_code,
            status_text=response.reason_phrase,
            error_code=error_code,
        )

    def _fail(self, op: TransferOperation, error: Exception) -> None:
        op.fail(str(error))
        logger.error(
            "Transfer failed",
            operation=op.operation,
            key=op.key,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _chunks(
        self, body: bytes, tracker: ProgressTracker
    ) -> AsyncIterator[bytes]:
        for start in range(0, len(body), self._chunk_size):
            chunk = body[start : start + self._chunk_size]
            yield chunk
            tracker.advance(len(chunk))


def _close_stream(handler: Optional[ProgressHandler]) -> None:
    if isinstance(handler, ProgressStream):
        handler.close()


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _label(op: TransferOperation) -> str:
    return op.operation.replace("_", " ").capitalize()
