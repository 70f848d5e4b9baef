"""Resolve settings from YAML files, environment, and CLI overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from graphtransfer.config.helpers import parse_bytes
from graphtransfer.core.const import API_URL, DEFAULT_MAX_RETRIES, DEFAULT_SLICE_SIZE

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".graphtransfer"
SETTINGS_FILE_NAME = "settings.yaml"
DEVELOPMENT_SETTINGS_FILE_NAME = "settings.development.yaml"

_ENV_MAP: dict[str, str] = {
    "api_url": "GRAPHTRANSFER_API_URL",
    "access_token": "GRAPHTRANSFER_ACCESS_TOKEN",
    "slice_size": "GRAPHTRANSFER_SLICE_SIZE",
    "max_retries": "GRAPHTRANSFER_MAX_RETRIES",
    "page_size": "GRAPHTRANSFER_PAGE_SIZE",
    "debug_log": "GRAPHTRANSFER_DEBUG_LOG",
    "show_tokens": "GRAPHTRANSFER_SHOW_TOKENS",
    "show_payloads": "GRAPHTRANSFER_SHOW_PAYLOADS",
}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


class SettingsNotFound(Exception):
    """Raised when an explicitly requested settings file does not exist."""


class Settings(BaseModel):
    """Client settings.

    Attributes:
        api_url: Base URL of the API.
        access_token: Bearer token attached to API requests.
        slice_size: Bytes per upload slice; accepts ``"10mb"`` style values.
        max_retries: Attempts per slice before an upload fails.
        page_size: Default ``$top`` for collection listings.
        debug_log: Log every request and response.
        show_tokens: Include authorization header values in debug logs.
        show_payloads: Include bodies in debug logs.
    """

    api_url: str = API_URL
    access_token: str | None = None
    slice_size: int = DEFAULT_SLICE_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    page_size: int | None = None
    debug_log: bool = False
    show_tokens: bool = False
    show_payloads: bool = False

    @field_validator("slice_size", mode="before")
    @classmethod
    def _parse_slice_size(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_bytes(value)
        return value


class SettingsManager:
    """Build effective settings from files, environment, and CLI overrides.

    Later sources win: defaults, ``settings.yaml``,
    ``settings.development.yaml``, ``GRAPHTRANSFER_*`` environment variables,
    then CLI overrides.
    """

    def __init__(
        self, config_dir: Path | None = None, settings_path: Path | None = None
    ) -> None:
        """Initialise SettingsManager.

        Args:
            config_dir: Directory holding the settings files.
            settings_path: Explicit settings file. Unlike the default files,
                it must exist.
        """
        self.config_dir = config_dir or CONFIG_DIR
        self.settings_path = settings_path

    def _read_yaml(self, path: Path, required: bool = False) -> dict[str, Any]:
        try:
            with path.open("r") as settings_file:
                data = yaml.safe_load(settings_file) or {}
        except FileNotFoundError as exc:
            if required:
                raise SettingsNotFound(
                    f"Settings file {str(path)!r} not found."
                ) from exc
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {str(path)!r} must contain a mapping")
        logger.debug("Loaded settings from %s", path)
        return data

    def _read_file_settings(self) -> dict[str, Any]:
        if self.settings_path is not None:
            return self._read_yaml(self.settings_path, required=True)
        data = self._read_yaml(self.config_dir / SETTINGS_FILE_NAME)
        data.update(self._read_yaml(self.config_dir / DEVELOPMENT_SETTINGS_FILE_NAME))
        return data

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read settings overrides from environment variables.

        Returns:
            A dictionary of setting names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            if field_name == "slice_size":
                try:
                    overrides[field_name] = parse_bytes(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
                    continue
            elif field_name in {"max_retries", "page_size"}:
                try:
                    overrides[field_name] = int(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
                    continue
            elif field_name in {"debug_log", "show_tokens", "show_payloads"}:
                overrides[field_name] = env_value.lower() in YES_CONFIRMATION
            else:
                overrides[field_name] = env_value

        return overrides

    def load(self, cli_overrides: dict[str, Any] | None = None) -> Settings:
        """Resolve the effective settings for this run.

        Args:
            cli_overrides: Optional CLI-provided values; None values are
                ignored.

        Returns:
            The resolved ``Settings``.
        """
        settings = Settings(**self._read_file_settings())
        settings = settings.model_copy(update=self._read_env_overrides())
        if cli_overrides:
            updates = {k: v for k, v in cli_overrides.items() if v is not None}
            settings = settings.model_copy(update=updates)
        return Settings.model_validate(settings.model_dump())
