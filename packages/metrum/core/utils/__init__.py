"""Shared utilities for Metrum."""

from metrum.core.utils.json import dumps_json, read_json, write_json
from metrum.core.utils.logging import configure_logging, get_logger, log_performance

__all__ = [
    "configure_logging",
    "dumps_json",
    "get_logger",
    "log_performance",
    "read_json",
    "write_json",
]
