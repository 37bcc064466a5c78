"""Tests for tempo, meter and BBT value models."""

from __future__ import annotations

from pydantic import ValidationError
import pytest

from metrum.core.tempo import (
    BBTOffset,
    BBTTime,
    InvalidTempoError,
    Meter,
    Tempo,
    TempoLimits,
)

# ============================================================================
# Tempo
# ============================================================================


class TestTempo:
    """Test Tempo derived quantities."""

    def test_samples_per_beat(self):
        """120 bpm at 48 kHz is half a second per beat."""
        assert Tempo(beats_per_minute=120.0).samples_per_beat(48000) == 24000.0

    def test_quarter_notes_follow_note_type(self):
        """An eighth-note tempo advances the quarter-note position at half its bpm."""
        tempo = Tempo(beats_per_minute=120.0, note_type=8.0)

        assert tempo.quarter_notes_per_minute == 60.0
        assert tempo.ticks_per_minute == 60.0 * 1920

    def test_bpm_in_other_note_type(self):
        tempo = Tempo(beats_per_minute=120.0, note_type=4.0)

        assert tempo.bpm_in(8.0) == 240.0
        assert tempo.bpm_in(2.0) == 60.0

    def test_is_immutable(self):
        tempo = Tempo(beats_per_minute=120.0)

        with pytest.raises(ValidationError):
            tempo.beats_per_minute = 100.0  # type: ignore[misc]

    def test_str(self):
        assert str(Tempo(beats_per_minute=96.5, note_type=8.0)) == "96.5 bpm (1/8)"


# ============================================================================
# Meter
# ============================================================================


class TestMeter:
    """Test Meter derived quantities."""

    def test_quarter_notes_per_bar(self):
        assert Meter(divisions_per_bar=4.0).quarter_notes_per_bar == 4.0
        assert Meter(divisions_per_bar=6.0, note_type=8.0).quarter_notes_per_bar == 3.0

    def test_samples_per_grid_is_tempo_and_meter_sensitive(self):
        """A 6/8 grid line under a quarter-note tempo is half a beat long."""
        meter = Meter(divisions_per_bar=6.0, note_type=8.0)
        tempo = Tempo(beats_per_minute=120.0)

        assert meter.samples_per_grid(tempo, 48000) == 12000.0
        assert meter.samples_per_bar(tempo, 48000) == 72000.0

    def test_str(self):
        assert str(Meter(divisions_per_bar=7.0, note_type=8.0)) == "7/8"


# ============================================================================
# BBT
# ============================================================================


class TestBBTTime:
    """Test BBTTime validation, ordering and parsing."""

    def test_defaults_to_first_downbeat(self):
        assert BBTTime().as_tuple() == (1, 1, 0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"bars": 0},
            {"beats": 0},
            {"ticks": -1},
            {"ticks": 1920},
        ],
    )
    def test_rejects_out_of_range_fields(self, kwargs):
        with pytest.raises(ValidationError):
            BBTTime(**kwargs)

    def test_ordering(self):
        assert BBTTime(bars=1, beats=4, ticks=1919) < BBTTime(bars=2)
        assert BBTTime(bars=2, beats=2) > BBTTime(bars=2, beats=1, ticks=1000)
        assert BBTTime(bars=3) == BBTTime(bars=3, beats=1, ticks=0)
        assert max(BBTTime(bars=2), BBTTime(bars=5), BBTTime(bars=4)) == BBTTime(bars=5)

    def test_str(self):
        assert str(BBTTime(bars=12, beats=3, ticks=480)) == "012|03|0480"

    def test_parse_round_trips_str(self):
        bbt = BBTTime(bars=7, beats=2, ticks=960)

        assert BBTTime.parse(str(bbt)) == bbt

    def test_parse_without_ticks(self):
        assert BBTTime.parse("5|3") == BBTTime(bars=5, beats=3)

    @pytest.mark.parametrize("text", ["", "5", "a|b|c", "1|2|3|4"])
    def test_parse_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            BBTTime.parse(text)

    def test_offset_is_zero_based(self):
        offset = BBTOffset()

        assert (offset.bars, offset.beats, offset.ticks) == (0, 0, 0)
        with pytest.raises(ValidationError):
            BBTOffset(bars=-1)


# ============================================================================
# Limits
# ============================================================================


class TestTempoLimits:
    """Test the floors enforced on tempo and meter values."""

    def test_accepts_minimum_bpm(self):
        TempoLimits().check_tempo(Tempo(beats_per_minute=0.01))

    @pytest.mark.parametrize("bpm", [0.0, -120.0, 0.005, float("nan"), float("inf")])
    def test_rejects_unusable_bpm(self, bpm):
        with pytest.raises(InvalidTempoError):
            TempoLimits().check_tempo(Tempo(beats_per_minute=bpm))

    def test_rejects_bad_note_type(self):
        with pytest.raises(InvalidTempoError):
            TempoLimits().check_tempo(Tempo(beats_per_minute=120.0, note_type=0.0))

    def test_rejects_less_than_one_division(self):
        with pytest.raises(InvalidTempoError):
            TempoLimits().check_meter(Meter(divisions_per_bar=0.5))

    def test_custom_floor(self):
        limits = TempoLimits(min_bpm=20.0)

        with pytest.raises(InvalidTempoError):
            limits.check_tempo(Tempo(beats_per_minute=19.0))
