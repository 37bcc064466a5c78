"""Configuration management for Metrum."""

from metrum.core.config.loader import (
    clear_app_config_cache,
    configure_logging,
    detect_format,
    load_app_config,
    load_config,
)
from metrum.core.config.models import (
    AppConfig,
    ConfigBase,
    GridConfig,
    LoggingConfig,
    MeterConfig,
    TempoConfig,
)

__all__ = [
    # Loaders
    "load_config",
    "load_app_config",
    "clear_app_config_cache",
    "configure_logging",
    "detect_format",
    # App-level config
    "AppConfig",
    "ConfigBase",
    "GridConfig",
    "LoggingConfig",
    "MeterConfig",
    "TempoConfig",
]
