"""Tests for the transfer engine against a mocked HTTP transport."""

import asyncio
import dataclasses
import hashlib
import io

import httpx
import pytest

from multistore.core.exceptions import (
    NoActiveStorageError,
    ResponseParseError,
    SigningError,
    TransferError,
    ValidationError,
)
from multistore.objectstorage import (
    DeleteResult,
    ProgressStream,
    TransferEngine,
    TransferState,
    UploadResult,
    encode_key,
)

LIST_BODY = (
    b"<ListBucketResult xmlns='http://s3.amazonaws.com/doc/2006-03-01/'>"
    b"<Contents><Key>docs/a.txt</Key><Size>5</Size>"
    b"<LastModified>2024-01-01T00:00:00Z</LastModified></Contents>"
    b"<Contents><Key>docs/b.txt</Key><Size>7</Size></Contents>"
    b"</ListBucketResult>"
)

SIGNATURE_ERROR = (
    b"<Error><Code>SignatureDoesNotMatch</Code>"
    b"<Message>The request signature we calculated does not match</Message></Error>"
)


@pytest.fixture
def make_engine(signer, minio_config, mock_client):
    """Build an engine for the MinIO config that answers with ``handler``."""

    def _build(handler, **kwargs):
        return TransferEngine(
            lambda: minio_config,
            signer=signer,
            client=mock_client(handler),
            **kwargs,
        )

    return _build


def _ok(request):
    return httpx.Response(200)


class TestUpload:
    """Test uploads."""

    @pytest.mark.asyncio
    async def test_upload_bytes(self, make_engine, recorded_requests):
        """Test an upload sends a signed PUT with the body and its hash."""
        engine = make_engine(_ok)
        payload = b"0123456789"

        result = await engine.upload(payload, "docs/report.txt")

        assert result == UploadResult(
            success=True,
            key="docs/report.txt",
            url="http://localhost:9000/scratch/docs/report.txt",
        )
        request = recorded_requests[0]
        assert request.method == "PUT"
        assert request.content == payload
        assert request.headers["Host"] == "localhost:9000"
        assert request.headers["Content-Length"] == "10"
        assert request.headers["Content-Type"] == "text/plain"
        assert request.headers["x-amz-content-sha256"] == hashlib.sha256(payload).hexdigest()
        assert request.headers["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=minioadmin/")
        assert "transfer-encoding" not in request.headers

    @pytest.mark.asyncio
    async def test_upload_path_and_file_object(self, make_engine, recorded_requests, tmp_path):
        """Test paths and binary file objects are read fully."""
        engine = make_engine(_ok)
        source = tmp_path / "photo.jpg"
        source.write_bytes(b"\xff\xd8jpeg")

        await engine.upload(source, "photo.jpg")
        await engine.upload(io.BytesIO(b"stream"), "blob")

        assert recorded_requests[0].content == b"\xff\xd8jpeg"
        assert recorded_requests[0].headers["Content-Type"] == "image/jpeg"
        assert recorded_requests[1].content == b"stream"
        assert recorded_requests[1].headers["Content-Type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_upload_text_file_rejected(self, make_engine):
        """Test text-mode file objects are rejected."""
        engine = make_engine(_ok)

        with pytest.raises(TypeError, match="binary"):
            await engine.upload(io.StringIO("text"), "a.txt")

    @pytest.mark.asyncio
    async def test_upload_key_is_encoded(self, make_engine, recorded_requests):
        """Test keys with spaces and unicode are percent-encoded once."""
        engine = make_engine(_ok)

        await engine.upload(b"x", "my docs/café.txt")

        assert recorded_requests[0].url.raw_path == b"/scratch/my%20docs/caf%C3%A9.txt"

    @pytest.mark.asyncio
    async def test_upload_progress_per_chunk(self, make_engine):
        """Test progress is reported for every chunk sent."""
        engine = make_engine(_ok, upload_chunk_size=4)
        events = []

        await engine.upload(b"0123456789", "a.bin", on_progress=events.append)

        assert [(e.loaded, e.total) for e in events] == [(4, 10), (8, 10), (10, 10)]
        assert events[-1].percent == 100

    @pytest.mark.asyncio
    async def test_upload_empty_file_reports_complete(self, make_engine):
        """Test an empty upload still reports completion."""
        engine = make_engine(_ok)
        events = []

        await engine.upload(b"", "empty.txt", on_progress=events.append)

        assert len(events) == 1
        assert events[0].percent == 100
        assert events[0].total == 0

    @pytest.mark.asyncio
    async def test_upload_error_status(self, make_engine):
        """Test a rejected upload raises with status and provider code."""
        engine = make_engine(lambda request: httpx.Response(403, content=SIGNATURE_ERROR))

        with pytest.raises(TransferError) as exc_info:
            await engine.upload(b"data", "a.txt")

        error = exc_info.value
        assert error.operation == "upload"
        assert error.status_code == 403
        assert error.status_text == "Forbidden"
        assert error.error_code == "SignatureDoesNotMatch"
        assert str(error) == "Upload failed: 403 Forbidden (SignatureDoesNotMatch)"


class TestDownload:
    """Test downloads."""

    @pytest.mark.asyncio
    async def test_download(self, make_engine, recorded_requests):
        """Test a download returns the body of a signed GET."""
        engine = make_engine(lambda request: httpx.Response(200, content=b"hello world"))

        data = await engine.download("docs/hello.txt")

        assert data == b"hello world"
        request = recorded_requests[0]
        assert request.method == "GET"
        assert request.url.path == "/scratch/docs/hello.txt"
        assert "Authorization" in request.headers

    @pytest.mark.asyncio
    async def test_download_progress(self, make_engine):
        """Test progress is reported when the length is known."""
        engine = make_engine(lambda request: httpx.Response(200, content=b"x" * 20))
        events = []

        await engine.download("a.bin", on_progress=events.append)

        assert events
        assert events[-1].loaded == 20
        assert events[-1].total == 20
        assert events[-1].percent == 100

    @pytest.mark.asyncio
    async def test_download_progress_per_chunk(self, make_engine):
        """Test a streamed body reports the bytes received after each chunk."""

        async def _body():
            yield b"abc"
            yield b"def"

        engine = make_engine(
            lambda request: httpx.Response(
                200, headers={"Content-Length": "6"}, content=_body()
            )
        )
        events = []

        assert await engine.download("a.bin", on_progress=events.append) == b"abcdef"
        assert [(e.loaded, e.total) for e in events] == [(3, 6), (6, 6)]

    @pytest.mark.asyncio
    async def test_download_without_length_reports_nothing(self, make_engine):
        """Test no progress is reported without a Content-Length."""

        async def _body():
            yield b"abc"
            yield b"def"

        engine = make_engine(lambda request: httpx.Response(200, content=_body()))
        events = []

        data = await engine.download("a.bin", on_progress=events.append)

        assert data == b"abcdef"
        assert events == []

    @pytest.mark.asyncio
    async def test_download_not_found(self, make_engine):
        """Test a missing object raises with the provider's code."""
        body = b"<Error><Code>NoSuchKey</Code></Error>"
        engine = make_engine(lambda request: httpx.Response(404, content=body))

        with pytest.raises(TransferError) as exc_info:
            await engine.download("missing.txt")

        assert exc_info.value.status_code == 404
        assert exc_info.value.error_code == "NoSuchKey"
        assert str(exc_info.value) == "Download failed: 404 Not Found (NoSuchKey)"


class TestListAndDelete:
    """Test listing and deletion."""

    @pytest.mark.asyncio
    async def test_list(self, make_engine, recorded_requests):
        """Test a listing parses the returned records."""
        engine = make_engine(lambda request: httpx.Response(200, content=LIST_BODY))

        records = await engine.list()

        assert [(r.key, r.size, r.name) for r in records] == [
            ("docs/a.txt", 5, "a.txt"),
            ("docs/b.txt", 7, "b.txt"),
        ]
        request = recorded_requests[0]
        assert request.url.path == "/scratch/"
        assert request.url.query == b""

    @pytest.mark.asyncio
    async def test_list_with_prefix(self, make_engine, recorded_requests):
        """Test the prefix is sent encoded in the query string."""
        engine = make_engine(lambda request: httpx.Response(200, content=LIST_BODY))

        await engine.list("docs/2024 Q1/")

        assert recorded_requests[0].url.query == b"prefix=docs%2F2024%20Q1%2F"

    @pytest.mark.asyncio
    async def test_list_empty_body(self, make_engine):
        """Test an empty listing response yields no records."""
        engine = make_engine(_ok)
        assert await engine.list() == []

    @pytest.mark.asyncio
    async def test_list_malformed(self, make_engine):
        """Test malformed XML raises a parse error."""
        engine = make_engine(lambda request: httpx.Response(200, content=b"<broken"))

        with pytest.raises(ResponseParseError):
            await engine.list()

    @pytest.mark.asyncio
    async def test_delete(self, make_engine, recorded_requests):
        """Test a delete sends a signed DELETE."""
        engine = make_engine(lambda request: httpx.Response(204))

        assert await engine.delete("old/file.txt") == DeleteResult(success=True)
        assert recorded_requests[0].method == "DELETE"
        assert recorded_requests[0].url.path == "/scratch/old/file.txt"

    @pytest.mark.asyncio
    async def test_delete_dot_segments_kept(
        self, make_engine, signer, minio_config, recorded_requests
    ):
        """Test "." and ".." key segments reach the wire as signed."""
        engine = make_engine(lambda request: httpx.Response(204))

        await engine.delete("a/.././b.txt")

        raw_path = recorded_requests[0].url.raw_path
        assert raw_path == b"/scratch/a/%2E%2E/%2E/b.txt"
        signed = signer.sign(minio_config, "DELETE", encode_key("a/.././b.txt"))
        assert signed.canonical_request.split("\n")[1] == raw_path.decode()

    @pytest.mark.asyncio
    async def test_check_connection(self, make_engine, recorded_requests):
        """Test the connection check lists at most one key."""
        engine = make_engine(lambda request: httpx.Response(200, content=LIST_BODY))

        assert await engine.check_connection() is True
        assert recorded_requests[0].url.query == b"max-keys=1"

    @pytest.mark.asyncio
    async def test_check_connection_rejected(self, make_engine):
        """Test a rejected connection check raises."""
        engine = make_engine(lambda request: httpx.Response(403, content=SIGNATURE_ERROR))

        with pytest.raises(TransferError) as exc_info:
            await engine.check_connection()

        assert exc_info.value.operation == "check_connection"
        assert str(exc_info.value).startswith("Check connection failed: 403")


class TestFailures:
    """Test failure handling and the state machine."""

    @pytest.mark.asyncio
    async def test_network_error(self, make_engine):
        """Test a transport failure raises without a status."""

        def _refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        engine = make_engine(_refuse)

        with pytest.raises(TransferError) as exc_info:
            await engine.delete("a.txt")

        assert exc_info.value.status_code is None
        assert exc_info.value.operation == "delete"
        assert "Network error" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_successful_transitions(self, make_engine):
        """Test a successful operation walks every state in order."""
        seen = []
        engine = make_engine(_ok, state_listener=lambda op: seen.append(op.state))

        await engine.delete("a.txt")

        assert seen == [
            TransferState.BUILDING_REQUEST,
            TransferState.SIGNED,
            TransferState.IN_FLIGHT,
            TransferState.SUCCEEDED,
        ]

    @pytest.mark.asyncio
    async def test_failed_transitions(self, make_engine):
        """Test an HTTP failure ends in the failed state."""
        operations = []
        engine = make_engine(
            lambda request: httpx.Response(500),
            state_listener=operations.append,
        )

        with pytest.raises(TransferError):
            await engine.download("a.txt")

        operation = operations[-1]
        assert operation.state is TransferState.FAILED
        assert operation.history == [
            TransferState.IDLE,
            TransferState.BUILDING_REQUEST,
            TransferState.SIGNED,
            TransferState.IN_FLIGHT,
            TransferState.FAILED,
        ]
        assert "500" in operation.error

    @pytest.mark.asyncio
    async def test_signing_failure_before_request(
        self, signer, minio_config, mock_client, recorded_requests
    ):
        """Test a signing failure fails before any request is sent."""
        broken = dataclasses.replace(minio_config, provider="nimbus")
        seen = []
        engine = TransferEngine(
            lambda: broken,
            signer=signer,
            client=mock_client(_ok),
            state_listener=lambda op: seen.append(op.state),
        )

        with pytest.raises(SigningError):
            await engine.delete("a.txt")

        assert recorded_requests == []
        assert seen == [TransferState.BUILDING_REQUEST, TransferState.FAILED]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", "   "])
    async def test_empty_key_rejected(self, make_engine, recorded_requests, key):
        """Test object operations refuse a key that would address the bucket."""
        seen = []
        engine = make_engine(_ok, state_listener=lambda op: seen.append(op.state))

        with pytest.raises(ValidationError, match="key"):
            await engine.upload(b"data", key)
        with pytest.raises(ValidationError, match="key"):
            await engine.download(key)
        with pytest.raises(ValidationError, match="key"):
            await engine.delete(key)

        assert recorded_requests == []
        assert TransferState.SIGNED not in seen
        assert seen.count(TransferState.FAILED) == 3

    @pytest.mark.asyncio
    async def test_no_active_storage(self, signer, mock_client):
        """Test a config source failure propagates."""

        def _nothing_active():
            raise NoActiveStorageError("No storage configured")

        engine = TransferEngine(_nothing_active, signer=signer, client=mock_client(_ok))

        with pytest.raises(NoActiveStorageError):
            await engine.list()


class TestProgressStream:
    """Test consuming progress as an async iterator."""

    @pytest.mark.asyncio
    async def test_stream_events(self, make_engine):
        """Test events arrive through the stream and it ends with the transfer."""
        engine = make_engine(_ok, upload_chunk_size=5)
        stream = ProgressStream()

        task = asyncio.create_task(engine.upload(b"x" * 15, "a.bin", on_progress=stream))
        events = [event async for event in stream]
        result = await task

        assert result.success is True
        assert [event.loaded for event in events] == [5, 10, 15]
        assert stream.closed

    @pytest.mark.asyncio
    async def test_stream_closed_on_failure(self, make_engine):
        """Test the stream ends when the transfer fails."""
        engine = make_engine(lambda request: httpx.Response(503))
        stream = ProgressStream()

        task = asyncio.create_task(engine.download("a.bin", on_progress=stream))
        events = [event async for event in stream]

        with pytest.raises(TransferError):
            await task
        assert events == []
        assert stream.closed


def test_encode_key():
    """Test keys keep slashes and unreserved characters."""
    assert encode_key("a b/c~d_e-f.g") == "a%20b/c~d_e-f.g"
    assert encode_key("100%+tax") == "100%25%2Btax"


def test_encode_key_dot_segments():
    """Test whole "." and ".." segments are escaped and other dots are not."""
    assert encode_key("a/../b") == "a/%2E%2E/b"
    assert encode_key("./x") == "%2E/x"
    assert encode_key(".../.hidden/a..b") == ".../.hidden/a..b"
