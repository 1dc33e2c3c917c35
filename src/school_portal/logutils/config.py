"""Logging configuration for School Portal.

Defaults depend on where the code runs: Rich console output while developing,
plain text under pytest and CI, JSON to stderr and a rotating file in
production. Every default can be overridden from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

_TRUTHY = ("true", "1", "yes")


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"
    CI = "ci"


class LogOutput(Enum):
    CONSOLE = "console"
    FILE = "file"
    BOTH = "both"
    JSON = "json"


@dataclass
class LogConfig:
    """Logging configuration container."""

    level: str = "INFO"
    output: LogOutput = LogOutput.CONSOLE
    json_format: bool = False
    use_rich: bool = True
    mask_sensitive: bool = True
    include_correlation_id: bool = True
    log_file: Path | None = None
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5
    # Per-logger overrides, e.g. {"school_portal.cache": "WARNING"}
    module_levels: dict[str, str] = field(default_factory=dict)
    # Static fields added to every JSON record (service name, region, ...)
    extra_fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> LogConfig:
        """Build a configuration from environment variables.

        Environment variables:
            LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL
            LOG_OUTPUT: console, file, both or json
            LOG_JSON / LOG_RICH / LOG_MASK_SENSITIVE: true or false
            LOG_FILE: log file path (file and both outputs)
            LOG_MAX_SIZE: rotation size in bytes
            LOG_BACKUP_COUNT: rotated files to keep
            LOG_SERVICE_NAME: value of the static ``service`` field
        """
        config = cls.defaults_for(detect_environment())

        if level := os.getenv("LOG_LEVEL"):
            config.level = level.upper()

        if output := os.getenv("LOG_OUTPUT"):
            try:
                config.output = LogOutput(output.lower())
            except ValueError:
                pass

        if json_format := os.getenv("LOG_JSON"):
            config.json_format = json_format.lower() in _TRUTHY

        if use_rich := os.getenv("LOG_RICH"):
            config.use_rich = use_rich.lower() in _TRUTHY

        if mask_sensitive := os.getenv("LOG_MASK_SENSITIVE"):
            config.mask_sensitive = mask_sensitive.lower() in _TRUTHY

        if log_file := os.getenv("LOG_FILE"):
            config.log_file = Path(log_file)

        if max_size := os.getenv("LOG_MAX_SIZE"):
            try:
                config.max_file_size = int(max_size)
            except ValueError:
                pass

        if backup_count := os.getenv("LOG_BACKUP_COUNT"):
            try:
                config.backup_count = int(backup_count)
            except ValueError:
                pass

        if service := os.getenv("LOG_SERVICE_NAME"):
            config.extra_fields["service"] = service

        return config

    @classmethod
    def defaults_for(cls, env: Environment) -> LogConfig:
        if env == Environment.PRODUCTION:
            return cls(
                level="INFO",
                output=LogOutput.BOTH,
                json_format=True,
                use_rich=False,
                log_file=Path("logs/school_portal.log"),
            )

        if env == Environment.CI:
            return cls(level="INFO", use_rich=False)

        if env == Environment.TESTING:
            return cls(level="DEBUG", use_rich=False)

        return cls(level="DEBUG", use_rich=True)


def detect_environment() -> Environment:
    """Work out the runtime environment from well-known variables."""
    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        return Environment.CI

    env_name = os.getenv("ENVIRONMENT", os.getenv("ENV", "")).lower()
    if env_name in ("prod", "production"):
        return Environment.PRODUCTION
    if env_name in ("test", "testing"):
        return Environment.TESTING

    if os.getenv("PYTEST_CURRENT_TEST"):
        return Environment.TESTING

    return Environment.DEVELOPMENT


_config: LogConfig | None = None


def get_config() -> LogConfig:
    global _config
    if _config is None:
        _config = LogConfig.from_env()
    return _config


def set_config(config: LogConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
