"""Configuration loading utilities with JSON and YAML support."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from metrum.core.config.models import AppConfig
from metrum.core.utils.json import read_json
from metrum.core.utils.logging import configure_logging as _configure_logging

logger = logging.getLogger(__name__)

# Default app config path (can be overridden)
_DEFAULT_APP_CONFIG_PATH = Path("metrum.json")
_app_config_cache: AppConfig | None = None

ENV_LOG_LEVEL = "METRUM_LOG_LEVEL"
ENV_FRAME_RATE = "METRUM_FRAME_RATE"


def detect_format(file_path: Path | str) -> str:
    """Detect config file format from extension.

    Args:
        file_path: Path to config file

    Returns:
        Format string: "json" or "yaml"

    Raises:
        ValueError: If format cannot be determined

    Example:
        >>> detect_format("metrum.json")
        'json'
        >>> detect_format("metrum.yml")
        'yaml'
    """
    suffix = Path(file_path).suffix.lower()

    if suffix == ".json":
        return "json"
    elif suffix in [".yaml", ".yml"]:
        return "yaml"
    else:
        raise ValueError(f"Unsupported config format: {suffix}")


def load_config(path: str | Path) -> dict[str, Any]:
    """Load and return raw configuration dictionary.

    Supports both JSON and YAML formats. Format is auto-detected
    from file extension.

    Args:
        path: Path to config file (.json, .yaml, or .yml)

    Returns:
        Raw configuration dictionary

    Raises:
        FileNotFoundError: If config file does not exist
        ValueError: If format is not supported or file content is invalid
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    fmt = detect_format(path)

    if fmt == "json":
        try:
            return read_json(path)
        except ValueError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

    try:
        with path.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    # safe_load returns None for empty files
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Expected a mapping in {path}, got {type(content).__name__}")
    return content


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration.

    Missing files fall back to defaults. ``METRUM_LOG_LEVEL`` and
    ``METRUM_FRAME_RATE`` override the file values.

    Args:
        path: Path to app config file (.json, .yaml, or .yml)
              Defaults to metrum.json

    Returns:
        Validated AppConfig instance with defaults for missing values

    Raises:
        ValidationError: If config is invalid
    """
    global _app_config_cache

    if path is None:
        path = _DEFAULT_APP_CONFIG_PATH

    if _app_config_cache is not None and path == _DEFAULT_APP_CONFIG_PATH:
        return _app_config_cache

    if Path(path).exists():
        raw_config = load_config(path)
    else:
        logger.debug("No config at %s, using defaults", path)
        raw_config = {}

    _apply_env_overrides(raw_config)
    config = AppConfig.model_validate(raw_config)

    if path == _DEFAULT_APP_CONFIG_PATH:
        _app_config_cache = config

    return config


def clear_app_config_cache() -> None:
    global _app_config_cache
    _app_config_cache = None


def configure_logging(config: AppConfig | None = None) -> None:
    """Configure Python logging from app config.

    Args:
        config: AppConfig instance (loads default if None)
    """
    if config is None:
        config = load_app_config()

    _configure_logging(
        level=config.logging.level,
        format_string=config.logging.format,
        filename=config.logging.filename,
        structured=config.logging.structured,
    )


def _apply_env_overrides(raw_config: dict[str, Any]) -> None:
    """Fill environment overrides into a raw config dict (mutates it)."""
    level = os.getenv(ENV_LOG_LEVEL)
    if level:
        logger.debug("Loaded %s from environment", ENV_LOG_LEVEL)
        logging_section = dict(raw_config.get("logging") or {})
        logging_section["level"] = level.upper()
        raw_config["logging"] = logging_section

    frame_rate = os.getenv(ENV_FRAME_RATE)
    if frame_rate:
        logger.debug("Loaded %s from environment", ENV_FRAME_RATE)
        raw_config["frame_rate"] = frame_rate
