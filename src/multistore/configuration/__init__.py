"""Storage configuration persistence and the active storage pointer."""

from .persistence import (
    ACTIVE_KEY,
    CONFIGS_KEY,
    JsonFileStateStore,
    MemoryStateStore,
    StateStore,
)
from .store import ConfigurationStore

__all__ = [
    "ConfigurationStore",
    "StateStore",
    "JsonFileStateStore",
    "MemoryStateStore",
    "CONFIGS_KEY",
    "ACTIVE_KEY",
]
