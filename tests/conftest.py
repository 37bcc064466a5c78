"""Shared pytest fixtures for metrum tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from metrum.core.config.loader import clear_app_config_cache
from metrum.core.tempo import BBTTime, Meter, PositionLockStyle, Tempo, TempoMap, TempoType

FRAME_RATE = 48000
"""Sample rate used throughout the tests; 120 bpm is 24000 samples per beat."""

# ============================================================================
# Tempo Map Fixtures
# ============================================================================


@pytest.fixture
def tempo_map() -> Iterator[TempoMap]:
    """Fresh 120 bpm, 4/4 map at 48 kHz."""
    tmap = TempoMap(FRAME_RATE)
    yield tmap
    tmap.close()


@pytest.fixture
def waltz_map() -> Iterator[TempoMap]:
    """Fresh 180 bpm, 3/4 map at 48 kHz."""
    tmap = TempoMap(
        FRAME_RATE,
        default_tempo=Tempo(beats_per_minute=180.0),
        default_meter=Meter(divisions_per_bar=3.0, note_type=4.0),
    )
    yield tmap
    tmap.close()


@pytest.fixture
def busy_map(tempo_map: TempoMap) -> TempoMap:
    """Map with a ramp, an audio-locked tempo and two meter changes."""
    assert tempo_map.add_tempo(Tempo(beats_per_minute=90.0), 16.0, TempoType.RAMP)
    assert tempo_map.add_tempo(
        Tempo(beats_per_minute=150.0), 1_200_000, lock_style=PositionLockStyle.AUDIO_TIME
    )
    assert tempo_map.add_meter(Meter(divisions_per_bar=3.0), BBTTime(bars=3))
    assert tempo_map.add_meter(Meter(divisions_per_bar=7.0, note_type=8.0), BBTTime(bars=12))
    return tempo_map


# ============================================================================
# Config Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_config_cache(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep config cache and environment overrides from leaking between tests."""
    monkeypatch.delenv("METRUM_LOG_LEVEL", raising=False)
    monkeypatch.delenv("METRUM_FRAME_RATE", raising=False)
    clear_app_config_cache()
    yield
    clear_app_config_cache()


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Undo root logger changes made by configure_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
