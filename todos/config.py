"""Application configuration: env vars, YAML file, defaults."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings


def _repo_root() -> Path:
    """Find the repository root (directory containing pyproject.toml)."""
    current = Path(__file__).resolve().parent.parent
    if (current / "pyproject.toml").exists():
        return current
    return Path.cwd()


REPO_ROOT = _repo_root()

DEFAULT_DATABASE_URL = "sqlite:todos.db"


class ConfigError(ValueError):
    """Raised for a config file that is not a YAML mapping."""


class DatabaseBackend(str, Enum):
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


def backend_for_url(url: str) -> DatabaseBackend | None:
    """Map a connection string to its backend, or None if unsupported."""
    if url.startswith("sqlite:"):
        return DatabaseBackend.SQLITE
    if url.startswith(("postgres://", "postgresql://")):
        return DatabaseBackend.POSTGRESQL
    return None


class DatabaseConfig(BaseSettings):
    # DATABASE_URL is shared with other database tooling, TODOS_DB_URL wins over it
    url: str = Field(
        default_factory=lambda: os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL
    )
    extra_urls: list[str] = Field(default_factory=list)

    model_config = {"env_prefix": "TODOS_DB_"}

    @property
    def urls(self) -> list[str]:
        """Every target the CLI runs against, primary first, duplicates dropped."""
        seen: list[str] = []
        for url in [self.url, *self.extra_urls]:
            if url and url not in seen:
                seen.append(url)
        return seen


class AppConfig(BaseSettings):
    """Top-level application configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    log_level: str = "warning"

    # Environment & Sentry
    environment: str = "development"
    sentry_dsn: str = ""

    model_config = {"env_prefix": "TODOS_"}

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> AppConfig:
        """Load config from YAML file; env vars fill in what the file leaves out."""
        if path is None:
            path = REPO_ROOT / "config" / "app.yml"

        values: dict[str, Any] = {}
        if path.exists():
            with open(path) as f:
                values = yaml.safe_load(f) or {}
        if not isinstance(values, dict):
            raise ConfigError(f"{path}: top level must be a mapping, not {type(values).__name__}")
        if not all(isinstance(key, str) for key in values):
            raise ConfigError(f"{path}: top-level keys must be strings")

        # A nested dict is validated without reading the environment, so
        # build the settings object here to keep env fallbacks for missing keys.
        if "database" in values:
            database = values["database"] or {}
            if not isinstance(database, dict):
                raise ConfigError(f"{path}: 'database' must be a mapping")
            values["database"] = DatabaseConfig(**database)

        return cls(**values)
