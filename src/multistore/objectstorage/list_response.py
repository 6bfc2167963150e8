"""Parsing of S3 XML response bodies."""

import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Optional

from multistore.core import get_logger
from multistore.core.exceptions import ResponseParseError

from .models import FileRecord

logger = get_logger(__name__)


def _local_name(tag: str) -> str:
    # Strip the "{namespace}" prefix; providers disagree on declaring one.
    return tag.rsplit("}", 1)[-1]


def _parse_size(value: Optional[str]) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable LastModified value", value=value)
        return None


def parse_list_bucket_result(body: str | bytes) -> list[FileRecord]:
    """Parse a ``ListBucketResult`` body into file records.

    ``Contents`` elements without a ``Key`` are skipped. An empty body or a
    body without ``Contents`` yields an empty list.

    Raises:
        ResponseParseError: If the body is not well-formed XML
    """
    if not body or not body.strip():
        return []

    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ResponseParseError(
            f"List failed: response is not valid XML ({e})", operation="list"
        ) from e

    records = []
    for element in root.iter():
        if _local_name(element.tag) != "Contents":
            continue
        fields = {_local_name(child.tag): child.text for child in element}
        key = fields.get("Key")
        if not key:
            continue
        records.append(
            FileRecord(
                key=key,
                size=_parse_size(fields.get("Size")),
                last_modified=_parse_timestamp(fields.get("LastModified")),
                name=key.split("/")[-1],
            )
        )
    return records


def parse_error_code(body: str | bytes) -> Optional[str]:
    """Return the ``<Code>`` of an S3 error body, if there is one."""
    if not body:
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    for element in root.iter():
        if _local_name(element.tag) == "Code" and element.text:
            return element.text.strip()
    return None
