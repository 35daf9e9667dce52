"""
Prompt Vault Configuration
==========================

Settings are read from ``PROMPTVAULT_*`` environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_DATABASE_URL = f"sqlite:///{PROJECT_ROOT / 'prompt_vault.db'}"


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    database_url: str = field(default_factory=lambda: os.environ.get("PROMPTVAULT_DATABASE_URL", DEFAULT_DATABASE_URL))
    host: str = field(default_factory=lambda: os.environ.get("PROMPTVAULT_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.environ.get("PROMPTVAULT_PORT", "8080")))
    api_prefix: str = field(default_factory=lambda: os.environ.get("PROMPTVAULT_API_PREFIX", "/api"))
    cors_origins: List[str] = field(default_factory=lambda: _env_list("PROMPTVAULT_CORS_ORIGINS", "*"))
    max_upload_bytes: int = field(default_factory=lambda: int(os.environ.get("PROMPTVAULT_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024))))
    log_level: str = field(default_factory=lambda: os.environ.get("PROMPTVAULT_LOG_LEVEL", "INFO").upper())


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
