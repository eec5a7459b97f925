"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # Empty variables (DEBUG=) fall back to the field default
        env_ignore_empty=True,
        extra="ignore",
    )

    telegram_bot_token: str = ""
    debug: bool = True
    webhook_url: str = ""  # reserved, polling mode only
    api_enabled: bool = True
    api_port: int = Field(default=8080, ge=0, le=65535)
    api_bind: str = "0.0.0.0"

    poll_timeout: int = Field(default=60, ge=0)
    poll_error_delay: float = Field(default=1.0, ge=0)
    shutdown_grace: float = Field(default=10.0, ge=0)
    max_inflight_dispatches: int = Field(default=64, ge=1)

    log_level: str = "INFO"
    log_json: bool = False

    def require_token(self) -> str:
        if not self.telegram_bot_token.strip():
            raise ConfigError("TELEGRAM_BOT_TOKEN environment variable is not set")
        return self.telegram_bot_token.strip()

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars and .env, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("TGRELAY_CONFIG")

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"config file not found: {path}")
        try:
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"config file is not valid YAML: {path}: {e}") from e
        if not isinstance(yaml_data, dict):
            raise ConfigError(f"config file must contain a mapping: {path}")

    try:
        return Settings(**yaml_data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {_describe(e)}") from e


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err["loc"])
        parts.append(f"{field}: {err['msg']}")
    return "; ".join(parts)
