"""Core utilities and shared components for multistore."""

from .config import settings
from .exceptions import MultistoreError, ValidationError
from .observability import get_logger, get_tracer

__all__ = ["settings", "MultistoreError", "ValidationError", "get_logger", "get_tracer"]
