"""Tests for configuration models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from metrum.core.config import AppConfig, GridConfig, LoggingConfig, MeterConfig, TempoConfig
from metrum.core.tempo import Meter, RoundMode, Tempo, TempoLimits, TempoMap


class TestAppConfig:
    """Test AppConfig defaults and validation."""

    def test_defaults(self):
        config = AppConfig()

        assert config.frame_rate == 48000
        assert config.default_tempo.to_tempo() == Tempo(beats_per_minute=120.0)
        assert config.default_meter.to_meter() == Meter(divisions_per_bar=4.0)
        assert config.limits == TempoLimits()
        assert config.grid.curve_points == 64
        assert config.logging.level == "INFO"

    def test_nested_values(self):
        config = AppConfig.model_validate(
            {
                "frame_rate": 44100,
                "default_tempo": {"beats_per_minute": 96, "note_type": 8},
                "default_meter": {"divisions_per_bar": 7, "note_type": 8},
                "limits": {"min_bpm": 20},
            }
        )

        assert config.frame_rate == 44100
        assert config.default_tempo.to_tempo() == Tempo(beats_per_minute=96.0, note_type=8.0)
        assert str(config.default_meter.to_meter()) == "7/8"
        assert config.limits.min_bpm == 20.0

    def test_unknown_keys_ignored(self):
        config = AppConfig.model_validate({"frame_rate": 96000, "theme": "dark"})

        assert config.frame_rate == 96000

    @pytest.mark.parametrize(
        "data",
        [
            {"frame_rate": 0},
            {"frame_rate": "fast"},
            {"default_tempo": {"beats_per_minute": -1}},
            {"limits": {"min_bpm": 0}},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ValidationError):
            AppConfig.model_validate(data)

    def test_default_path(self):
        assert AppConfig.default_path().name == "metrum.json"


class TestSectionConfigs:
    """Test the nested config sections."""

    def test_tempo_config(self):
        assert TempoConfig(beats_per_minute=60.0).to_tempo().samples_per_beat(48000) == 48000.0

    def test_meter_config(self):
        assert MeterConfig(divisions_per_bar=3.0).to_meter().quarter_notes_per_bar == 3.0

    def test_grid_bounds(self):
        with pytest.raises(ValidationError):
            GridConfig(curve_points=1)
        with pytest.raises(ValidationError):
            GridConfig(default_subdivisions=0)

    @pytest.mark.parametrize("level", ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    def test_log_levels(self, level):
        assert LoggingConfig(level=level).level == level

    def test_log_level_rejects_unknown(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")


class TestMapFromConfig:
    """Test that TempoMap.from_config applies every section."""

    def test_grid_defaults(self):
        config = AppConfig(grid=GridConfig(default_subdivisions=4, curve_points=5))
        tmap = TempoMap.from_config(config)
        try:
            # quarter-beat grid at 120 bpm, 48 kHz is 6000 samples
            assert tmap.round_to_beat_subdivision(31_000, mode=RoundMode.DOWN) == 30_000
            assert tmap.round_to_beat_subdivision(31_000, 1, RoundMode.DOWN) == 24_000
            positions, bpm = tmap.tempo_curve(0, 480_000)
            assert len(positions) == len(bpm) == 5
        finally:
            tmap.close()

    def test_values_and_limits(self):
        config = AppConfig(
            frame_rate=44100,
            default_tempo=TempoConfig(beats_per_minute=90.0),
            limits=TempoLimits(min_bpm=20.0),
        )
        tmap = TempoMap.from_config(config)
        try:
            assert tmap.frame_rate == 44100
            assert tmap.first_tempo().tempo == Tempo(beats_per_minute=90.0)
            assert tmap.add_tempo(Tempo(beats_per_minute=10.0), 4.0) is None
        finally:
            tmap.close()
