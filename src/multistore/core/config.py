"""Configuration management for multistore."""

import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


def _default_session_key_dir() -> Optional[Path]:
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if not runtime_dir:
        return None
    return Path(runtime_dir) / "multistore"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_service_name: str = "multistore"

    config_path: Path = Path.home() / ".multistore" / "storage.json"
    session_key_dir: Optional[Path] = _default_session_key_dir()
    upload_chunk_size: int = 64 * 1024

    model_config = {
        "env_prefix": "MULTISTORE_",
        "case_sensitive": False,
    }


settings = Settings()
