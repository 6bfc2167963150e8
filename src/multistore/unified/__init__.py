"""Unified storage interface."""

from .storage_manager import StorageManager

__all__ = ["StorageManager"]
