"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from dataset_viewer.exceptions import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    max_body_bytes: int = 100 * MIB


class StorageConfig(BaseModel):
    """Storage session settings."""

    allow_local_files: bool = True
    session_timeout_minutes: int = 60
    chunk_size_kb: int = 1024


class ArchiveConfig(BaseModel):
    """Archive parsing limits.

    The hard limits guard the streaming ZIP parser against pathological or
    hostile archives; values are in bytes unless noted.
    """

    default_max_entries: int = 10_000
    max_archive_size: int = 500 * GIB
    max_total_entries: int = 1_000_000
    max_central_directory_size: int = 500 * MIB
    max_entry_size: int = 100 * MIB
    tail_window_size: int = 64 * KIB


class LoggingConfig(BaseModel):
    """Logging output settings."""

    level: str = "INFO"
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for dataset-viewer-core."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_env(cls, base: "Config | None" = None) -> "Config":
        """Apply SERVER_HOST, SERVER_PORT, ALLOW_LOCAL_FILES and LOG_LEVEL overrides."""
        config = base.model_copy(deep=True) if base else cls()

        if host := os.environ.get("SERVER_HOST"):
            config.server.host = host

        if port := os.environ.get("SERVER_PORT"):
            try:
                config.server.port = int(port)
            except ValueError as e:
                raise ConfigError(f"Invalid SERVER_PORT: {port}") from e

        if allow_local := os.environ.get("ALLOW_LOCAL_FILES"):
            config.storage.allow_local_files = allow_local.lower() == "true"

        if level := os.environ.get("LOG_LEVEL"):
            config.logging.level = level.upper()

        return config
