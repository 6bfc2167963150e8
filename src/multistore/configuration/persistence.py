"""Durable key/value state behind the configuration store."""

import json
import os
import threading
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from multistore.core import get_logger

logger = get_logger(__name__)

CONFIGS_KEY = "multistore.configs"
ACTIVE_KEY = "multistore.active"


class StateStore(Protocol):
    """Minimal key/value persistence, JSON-serializable values only."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStateStore:
    """State kept in a dict for the lifetime of the process."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStateStore:
    """State kept as a single JSON object in a file.

    Every write rewrites the file through a temporary sibling and an atomic
    rename. A missing, unreadable or corrupt file reads as empty state.
    """

    def __init__(self, path: Union[str, os.PathLike]):
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Failed to read storage state", path=str(self._path), error=str(e)
            )
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed storage state", path=str(self._path))
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)
