"""Tests for the Metrics arena, its search indexes and cursors."""

from __future__ import annotations

import pytest

from metrum.core.tempo import (
    BBTTime,
    Meter,
    MeterSection,
    Tempo,
    TempoSection,
    UnknownSectionError,
)
from metrum.core.tempo.metrics import Metrics


def _tempo(bpm: float, beat: float, sample: int) -> TempoSection:
    return TempoSection(tempo=Tempo(beats_per_minute=bpm), beat=beat, sample=sample)


@pytest.fixture
def metrics() -> Metrics:
    """Initial pair plus tempos at 8/16 beats and a meter at bar 3."""
    m = Metrics.initial(Tempo(beats_per_minute=120.0), Meter(divisions_per_bar=4.0))
    m.insert(_tempo(140.0, 8.0, 192_000))
    m.insert(_tempo(100.0, 16.0, 356_571))
    m.insert(
        MeterSection(
            meter=Meter(divisions_per_bar=3.0), beat=8.0, sample=192_000, bbt=BBTTime(bars=3)
        )
    )
    return m


# ============================================================================
# Arena
# ============================================================================


class TestArena:
    """Test handle assignment and lookup."""

    def test_initial_pair(self):
        m = Metrics.initial(Tempo(beats_per_minute=120.0), Meter(divisions_per_bar=4.0))

        assert len(m) == 2
        assert not m.first_tempo.movable
        assert not m.first_meter.movable
        assert m.first_tempo.bar_offset == 0.0

    def test_insert_assigns_unique_handles(self, metrics):
        handles = [s.id for s in metrics]

        assert None not in handles
        assert len(set(handles)) == len(handles)

    def test_get_returns_owned_instance(self, metrics):
        section = metrics.tempos[1]

        assert metrics.get(section.id) is section
        assert section.id in metrics

    def test_remove_invalidates_handle(self, metrics):
        section_id = metrics.tempos[1].id
        metrics.remove(section_id)

        assert section_id not in metrics
        with pytest.raises(UnknownSectionError):
            metrics.get(section_id)

    def test_unknown_section_error_is_a_key_error(self, metrics):
        with pytest.raises(KeyError):
            metrics.get(999)

    def test_handles_are_not_reused(self, metrics):
        removed = metrics.tempos[1].id
        metrics.remove(removed)
        new_id = metrics.insert(_tempo(90.0, 30.0, 700_000))

        assert new_id != removed

    def test_copy_keeps_handles_but_not_instances(self, metrics):
        clone = metrics.copy()

        assert [s.id for s in clone] == [s.id for s in metrics]
        for original, copied in zip(metrics, clone):
            assert original is not copied
            assert original == copied

        clone.tempos[1].beat = 9.0
        assert metrics.tempos[1].beat == 8.0


# ============================================================================
# Ordering
# ============================================================================


class TestOrdering:
    """Test sequence ordering."""

    def test_meter_sorts_before_tempo_at_same_position(self, metrics):
        kinds = [(s.sample, s.kind) for s in metrics]

        assert kinds.index((192_000, "meter")) < kinds.index((192_000, "tempo"))

    def test_samples_non_decreasing(self, metrics):
        samples = [s.sample for s in metrics]

        assert samples == sorted(samples)

    def test_per_kind_views(self, metrics):
        assert [t.tempo.beats_per_minute for t in metrics.tempos] == [120.0, 140.0, 100.0]
        assert [m.meter.divisions_per_bar for m in metrics.meters] == [4.0, 3.0]

    def test_next_tempo(self, metrics):
        first, second, third = metrics.tempos

        assert metrics.next_tempo(first) is second
        assert metrics.next_tempo(third) is None

    def test_reorder_rebuilds_indexes(self, metrics):
        order = [s.id for s in metrics]
        second, third = metrics.tempos[1], metrics.tempos[2]
        swapped = [
            third.id if i == second.id else second.id if i == third.id else i for i in order
        ]

        metrics.reorder(swapped)

        assert metrics.tempos[1] is third
        assert metrics.next_tempo(third) is second

    def test_reorder_rejects_partial_order(self, metrics):
        with pytest.raises(ValueError):
            metrics.reorder([s.id for s in metrics][:-1])


# ============================================================================
# Search
# ============================================================================


class TestSearch:
    """Test binary searches over the indexes."""

    @pytest.mark.parametrize(
        ("sample", "bpm"),
        [(0, 120.0), (191_999, 120.0), (192_000, 140.0), (356_570, 140.0), (10**9, 100.0)],
    )
    def test_tempo_at_sample(self, metrics, sample, bpm):
        assert metrics.tempo_at_sample(sample).tempo.beats_per_minute == bpm

    def test_tempo_at_beat(self, metrics):
        assert metrics.tempo_at_beat(7.999).tempo.beats_per_minute == 120.0
        assert metrics.tempo_at_beat(8.0).tempo.beats_per_minute == 140.0

    def test_negative_positions_find_initial_sections(self, metrics):
        assert metrics.tempo_at_sample(-5) is metrics.first_tempo
        assert metrics.meter_at_beat(-1.0) is metrics.first_meter

    def test_meter_at_bar(self, metrics):
        assert metrics.meter_at_bar(2).meter.divisions_per_bar == 4.0
        assert metrics.meter_at_bar(3).meter.divisions_per_bar == 3.0
        assert metrics.meter_at_bar(50).meter.divisions_per_bar == 3.0


class TestSectionCursor:
    """Test resumable cursors."""

    def test_forward_seek(self, metrics):
        cursor = metrics.cursor_at_sample(0)

        assert cursor.tempo.tempo.beats_per_minute == 120.0
        cursor.seek_sample(200_000)
        assert cursor.tempo.tempo.beats_per_minute == 140.0
        assert cursor.meter.meter.divisions_per_bar == 3.0
        cursor.seek_sample(400_000)
        assert cursor.tempo.tempo.beats_per_minute == 100.0

    def test_backward_seek(self, metrics):
        cursor = metrics.cursor_at_sample(400_000)
        cursor.seek_sample(10)

        assert cursor.tempo is metrics.first_tempo
        assert cursor.meter is metrics.first_meter

    def test_seek_beat(self, metrics):
        cursor = metrics.cursor_at_beat(0.0).seek_beat(12.0)

        assert cursor.tempo.beat == 8.0
        assert cursor.next_tempo is metrics.tempos[2]
        assert cursor.next_meter is None

    def test_section_is_latest_change(self, metrics):
        cursor = metrics.cursor_at_sample(200_000)

        assert isinstance(cursor.section, TempoSection)
        assert cursor.section.sample == 192_000
