"""Settings from the environment and typed loading of config files."""

from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

M = TypeVar("M", bound=BaseModel)


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """taskkit configuration. Values come from ``TASKKIT_*`` environment variables."""

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")

    # Logging
    log_level: str = Field(default="INFO")
    log_path: Path | None = Field(default=None)
    log_max_bytes: int = Field(default=10 * 1024 * 1024)
    log_backup_count: int = Field(default=5)

    model_config = SettingsConfigDict(
        env_prefix="TASKKIT_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


class ConfigError(Exception):
    """A config file could not be read or did not match its model."""


class ConfigLoader:
    """Loads a JSON, YAML or TOML file into a pydantic model.

    The format is chosen by file extension.

    Args:
        path: The config file to read.
    """

    _PARSERS = {
        ".json": "_parse_json",
        ".yaml": "_parse_yaml",
        ".yml": "_parse_yaml",
        ".toml": "_parse_toml",
    }

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self, model: type[M]) -> M:
        """Read the file and validate it into *model*. Raises ConfigError."""
        parser = self._PARSERS.get(self.path.suffix.lower())
        if parser is None:
            msg = f"Unsupported config format: {self.path.suffix or '(none)'} ({self.path})"
            raise ConfigError(msg)

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            msg = f"Cannot read config file {self.path}: {exc}"
            raise ConfigError(msg) from exc

        try:
            data = getattr(self, parser)(text)
        except (ValueError, yaml.YAMLError) as exc:
            msg = f"Cannot parse config file {self.path}: {exc}"
            raise ConfigError(msg) from exc

        try:
            return model.model_validate(data or {})
        except ValidationError as exc:
            msg = f"Invalid config in {self.path}: {exc}"
            raise ConfigError(msg) from exc

    @staticmethod
    def _parse_json(text: str):
        return json.loads(text)

    @staticmethod
    def _parse_yaml(text: str):
        return yaml.safe_load(text)

    @staticmethod
    def _parse_toml(text: str):
        return tomllib.loads(text)
