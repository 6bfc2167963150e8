"""Signed transfers against S3-compatible object storage."""

from .list_response import parse_error_code, parse_list_bucket_result
from .models import DeleteResult, FileRecord, TransferProgress, UploadResult
from .operation import TransferOperation, TransferState
from .progress import ProgressCallback, ProgressHandler, ProgressStream
from .transfer_engine import TransferEngine, encode_key

__all__ = [
    "TransferEngine",
    "encode_key",
    "FileRecord",
    "UploadResult",
    "DeleteResult",
    "TransferProgress",
    "ProgressCallback",
    "ProgressHandler",
    "ProgressStream",
    "TransferOperation",
    "TransferState",
    "parse_list_bucket_result",
    "parse_error_code",
]
