"""Result types returned by transfer operations."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class FileRecord:
    """An object listed under a bucket prefix."""

    key: str
    size: int
    last_modified: Optional[datetime]
    name: str


@dataclass(frozen=True)
class UploadResult:
    success: bool
    key: str
    url: str


@dataclass(frozen=True)
class DeleteResult:
    success: bool


@dataclass(frozen=True)
class TransferProgress:
    """Byte-level progress of an upload or download."""

    percent: float
    loaded: int
    total: int
