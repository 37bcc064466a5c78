"""End-to-end session: config, edits, persistence and grid queries."""

from __future__ import annotations

import json

import pytest

from metrum.core.config import load_app_config
from metrum.core.tempo import (
    BBTTime,
    Meter,
    PositionLockStyle,
    RoundMode,
    Tempo,
    TempoMap,
    TempoType,
    load_state,
    save_state,
)


@pytest.fixture
def session_map(tmp_path):
    config_path = tmp_path / "metrum.json"
    config_path.write_text(
        json.dumps(
            {
                "frame_rate": 44100,
                "default_tempo": {"beats_per_minute": 100},
                "default_meter": {"divisions_per_bar": 3},
            }
        ),
        encoding="utf-8",
    )
    tempo_map = TempoMap.from_config(load_app_config(config_path))
    yield tempo_map
    tempo_map.close()


def test_edit_save_reload(session_map, tmp_path):
    """A session built from config survives a save/load cycle unchanged."""
    assert session_map.frame_rate == 44100
    assert session_map.bbt_at_beat(3.0) == BBTTime(bars=2)

    session_map.add_tempo(Tempo(beats_per_minute=100.0), 12.0, TempoType.RAMP)
    session_map.add_tempo(
        Tempo(beats_per_minute=140.0), 44100 * 30, lock_style=PositionLockStyle.AUDIO_TIME
    )
    session_map.add_meter(Meter(divisions_per_bar=5.0, note_type=8.0), BBTTime(bars=9))

    path = tmp_path / "session.yaml"
    save_state(session_map, path)
    reloaded = TempoMap(44100)
    try:
        load_state(reloaded, path)

        assert reloaded.get_state() == session_map.get_state()
        end = 44100 * 60
        assert [p.sample for p in reloaded.get_grid(0, end)] == [
            p.sample for p in session_map.get_grid(0, end)
        ]
    finally:
        reloaded.close()


def test_grid_agrees_with_conversions(session_map):
    """Every grid line round-trips through the BBT conversions and is on the beat grid."""
    session_map.add_tempo(Tempo(beats_per_minute=70.0), 6.0, TempoType.RAMP)
    session_map.add_tempo(Tempo(beats_per_minute=130.0), 20.0)
    session_map.add_meter(Meter(divisions_per_bar=4.0), BBTTime(bars=5))

    for point in session_map.get_grid(0, 44100 * 20):
        assert abs(session_map.sample_at_bbt(point.bbt) - point.sample) <= 1
        assert abs(session_map.round_to_beat(point.sample, RoundMode.NEAREST) - point.sample) <= 1
        assert session_map.bbt_at_sample(point.sample + 1).bars == point.bar
