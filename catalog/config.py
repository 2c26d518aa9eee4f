"""
Centralized configuration for the repository catalog.

This module provides a single source of truth for all configuration values.
Configuration is loaded from environment variables with sensible defaults.

Usage:
    from catalog.config import config

    base_url = config.remote.base_url
    delay = config.importer.delay_seconds
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_REPO_ROOT = Path(__file__).resolve().parents[1]


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class RemoteConfig:
    """Remote tabular store (HTTP API) configuration."""

    base_url: str = field(default_factory=lambda: os.getenv("CATALOG_REMOTE_URL", "").rstrip("/"))
    auth_token: str = field(default_factory=lambda: os.getenv("CATALOG_AUTH_TOKEN", ""))
    request_timeout: float = field(default_factory=lambda: _env_float("CATALOG_REMOTE_TIMEOUT", 10.0))
    failure_threshold: int = 3
    recovery_timeout: float = 30.0

    @property
    def enabled(self) -> bool:
        """Remote calls are only attempted when an endpoint is configured."""
        return bool(self.base_url)


@dataclass(frozen=True)
class GitHubConfig:
    """GitHub REST API configuration."""

    api_url: str = field(default_factory=lambda: os.getenv("GITHUB_API_URL", "https://api.github.com"))
    token: str = field(default_factory=lambda: os.getenv("GITHUB_TOKEN", ""))
    request_timeout: float = 15.0
    # Anonymous quota; replaced by response headers after the first call
    default_rate_limit: int = 60


@dataclass(frozen=True)
class StorageConfig:
    """Local cache store configuration."""

    db_path: str = field(
        default_factory=lambda: os.getenv("CATALOG_DB_PATH", str(_REPO_ROOT / "data" / "catalog.duckdb"))
    )
    key_prefix: str = field(default_factory=lambda: os.getenv("CATALOG_STORAGE_PREFIX", "awesome_repos_"))
    data_version: str = "1.0.0"
    seed_file: str = field(
        default_factory=lambda: os.getenv("CATALOG_SEED_FILE", str(_REPO_ROOT / "data" / "projects.json"))
    )


@dataclass(frozen=True)
class ImportConfig:
    """Bulk importer configuration."""

    delay_seconds: float = field(default_factory=lambda: _env_float("CATALOG_IMPORT_DELAY", 0.1))


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_format: bool = field(default_factory=lambda: os.getenv("LOG_JSON", "false").lower() == "true")


@dataclass(frozen=True)
class AppConfig:
    """Aggregated application configuration."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    importer: ImportConfig = field(default_factory=ImportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global configuration instance
config = AppConfig()
