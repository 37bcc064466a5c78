"""Configuration models for Metrum."""

from __future__ import annotations

from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from metrum.core.tempo.models import Meter, Tempo, TempoLimits


class ConfigBase(BaseModel):
    """Base class for all Metrum configurations.

    Provides common functionality for loading from files with defaults.
    Subclasses must implement default_path() to specify their default location.
    """

    model_config = ConfigDict(extra="ignore")  # Forward compatibility

    @classmethod
    def default_path(cls) -> Path:
        """Return the default config file path for this config type."""
        raise NotImplementedError(f"{cls.__name__} must implement default_path()")

    @classmethod
    def load_or_default(cls, path: Path | str | None = None) -> Self:
        """Load config from path or use default path.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValidationError: If config is invalid
        """
        if cls.__name__ == "AppConfig":
            from metrum.core.config.loader import load_app_config

            return load_app_config(path)  # type: ignore[return-value]

        from metrum.core.config.loader import load_config

        if path is None:
            path = cls.default_path()
        raw = load_config(path)
        return cls.model_validate(raw)


class TempoConfig(BaseModel):
    """Initial tempo of new maps."""

    beats_per_minute: float = Field(default=120.0, gt=0.0, description="Initial tempo")
    note_type: float = Field(default=4.0, gt=0.0, description="Note value of one beat")

    def to_tempo(self) -> Tempo:
        return Tempo(beats_per_minute=self.beats_per_minute, note_type=self.note_type)


class MeterConfig(BaseModel):
    """Initial meter of new maps."""

    divisions_per_bar: float = Field(default=4.0, gt=0.0)
    note_type: float = Field(default=4.0, gt=0.0)

    def to_meter(self) -> Meter:
        return Meter(divisions_per_bar=self.divisions_per_bar, note_type=self.note_type)


class GridConfig(BaseModel):
    """Grid display defaults."""

    default_subdivisions: int = Field(
        default=1, ge=1, le=64, description="Beat subdivisions used when snapping"
    )
    curve_points: int = Field(
        default=64, ge=2, le=4096, description="Points sampled for tempo curves"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    structured: bool = Field(default=False, description="Emit JSON log lines")
    filename: str | None = Field(default=None, description="Log file (stdout when unset)")


class AppConfig(ConfigBase):
    """Application-level configuration."""

    model_config = ConfigDict(extra="ignore")
    frame_rate: int = Field(default=48000, gt=0, description="Session sample rate in Hz")
    default_tempo: TempoConfig = TempoConfig()
    default_meter: MeterConfig = MeterConfig()
    limits: TempoLimits = TempoLimits()
    grid: GridConfig = GridConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def default_path(cls) -> Path:
        """Default path for application config."""
        return Path("metrum.json")
