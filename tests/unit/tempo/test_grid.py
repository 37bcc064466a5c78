"""Tests for grid generation and tempo curves."""

from __future__ import annotations

import numpy as np
import pytest

from metrum.core.tempo import BBTPoint, BBTTime, Meter, PositionLockStyle, Tempo, TempoType

BEAT = 24000


class TestGetGrid:
    """Test bar and beat line enumeration."""

    def test_two_bars_of_four(self, tempo_map):
        points = tempo_map.get_grid(0, 8 * BEAT)

        assert [p.sample for p in points] == [i * BEAT for i in range(8)]
        assert [(p.bar, p.beat) for p in points[:5]] == [(1, 1), (1, 2), (1, 3), (1, 4), (2, 1)]
        assert all(isinstance(p, BBTPoint) for p in points)

    def test_bar_flags(self, tempo_map):
        points = tempo_map.get_grid(0, 8 * BEAT)

        assert [p.is_bar for p in points] == [True, False, False, False] * 2
        assert points[4].bbt == BBTTime(bars=2)

    def test_meter_change(self, tempo_map):
        tempo_map.add_meter(Meter(divisions_per_bar=3.0), BBTTime(bars=2))

        bars = [p for p in tempo_map.get_grid(0, 10 * BEAT) if p.is_bar]

        assert [(p.bar, p.sample) for p in bars] == [(1, 0), (2, 4 * BEAT), (3, 7 * BEAT)]
        assert bars[-1].meter.meter == Meter(divisions_per_bar=3.0)

    def test_starts_mid_bar(self, tempo_map):
        points = tempo_map.get_grid(30_000, 100_000)

        assert [p.sample for p in points] == [48_000, 72_000, 96_000]
        assert [(p.bar, p.beat) for p in points] == [(1, 3), (1, 4), (2, 1)]

    def test_audio_locked_meter_cuts_bar(self, tempo_map):
        tempo_map.add_meter(Meter(divisions_per_bar=3.0), 100_000, PositionLockStyle.AUDIO_TIME)

        points = tempo_map.get_grid(90_000, 130_000)

        assert [(p.sample, p.bar, p.beat) for p in points] == [
            (96_000, 2, 1),
            (100_000, 3, 1),
            (124_000, 3, 2),
        ]

    def test_eighth_note_meter(self, tempo_map):
        tempo_map.replace_meter(
            tempo_map.first_meter(), Meter(divisions_per_bar=6.0, note_type=8.0)
        )

        points = tempo_map.get_grid(0, 4 * BEAT)

        assert len(points) == 8
        assert points[1].sample == BEAT // 2
        assert points[6].bbt == BBTTime(bars=2)

    def test_tempo_change(self, tempo_map):
        tempo_map.add_tempo(Tempo(beats_per_minute=60.0), 2.0)

        points = tempo_map.get_grid(0, 5 * BEAT)

        assert [p.sample for p in points] == [0, BEAT, 2 * BEAT, 4 * BEAT]
        assert points[-1].tempo.tempo.beats_per_minute == 60.0

    @pytest.mark.parametrize(("start", "end"), [(1000, 1000), (5000, 1000), (-10, -1)])
    def test_empty_interval(self, tempo_map, start, end):
        assert tempo_map.get_grid(start, end) == []

    def test_deterministic(self, busy_map):
        first = busy_map.get_grid(0, 3_000_000)
        second = busy_map.get_grid(0, 3_000_000)

        assert first == second
        assert [p.sample for p in first] == sorted(p.sample for p in first)

    def test_points_are_copies(self, tempo_map):
        point = tempo_map.get_grid(0, BEAT)[0]
        point.tempo.beat = 42.0

        assert tempo_map.first_tempo().beat == 0.0


class TestTempoCurve:
    """Test instantaneous tempo sampling."""

    def test_constant(self, tempo_map):
        positions, bpm = tempo_map.tempo_curve(0, 480_000, points=11)

        assert positions.shape == (11,)
        assert positions[0] == 0
        assert positions[-1] == 480_000
        np.testing.assert_allclose(bpm, 120.0)

    def test_ramp(self, tempo_map):
        tempo_map.replace_tempo(
            tempo_map.first_tempo(), Tempo(beats_per_minute=120.0), tempo_type=TempoType.RAMP
        )
        tempo_map.add_tempo(
            Tempo(beats_per_minute=60.0), 5_760_000, lock_style=PositionLockStyle.AUDIO_TIME
        )

        _, bpm = tempo_map.tempo_curve(0, 5_760_000, points=3)

        np.testing.assert_allclose(bpm, [120.0, 120.0 / np.sqrt(2.0), 60.0], rtol=1e-6)

    def test_step(self, tempo_map):
        tempo_map.add_tempo(Tempo(beats_per_minute=60.0), 4.0)

        positions, bpm = tempo_map.tempo_curve(0, 4 * BEAT + 48_000, points=3)

        assert list(bpm) == [120.0, 120.0, 60.0]
        assert positions[1] == 72_000
