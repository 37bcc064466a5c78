"""Conversions between sample, beat and bar-beat-tick positions.

Plain functions over a ``Metrics`` snapshot. They take no lock; the
``TempoMap`` calls them with its read lock held.

Two families:

* Tempo-sensitive only: ``beat_at_sample``, ``sample_at_beat`` and the
  ``samples_plus_beats`` helpers. Meter never enters these, so they are the
  ones to use for events whose position is canonically defined in beats.
* Tempo- and meter-sensitive: the BBT conversions and grid rounding. Bars
  and beats are counted from the last meter section at or before the
  position.
"""

from __future__ import annotations

import math

from metrum.core.tempo.enums import RoundMode
from metrum.core.tempo.metrics import Metrics, SectionCursor
from metrum.core.tempo.models import (
    TICKS_PER_BEAT,
    BBTOffset,
    BBTTime,
    Meter,
    Tempo,
    TempoMetric,
)
from metrum.core.tempo.sections import MeterSection, TempoSection

# ============================================================================
# Ramp context
# ============================================================================


def ramp_end(metrics: Metrics, tempo: TempoSection) -> tuple[float, int]:
    """End tempo and end sample that shape ``tempo``'s section.

    The end bpm is expressed in ``tempo``'s note type. A constant section,
    or a ramp with no successor, gets an end equal to its own start, which
    makes the ramp math fall back to the linear form.
    """
    nxt = metrics.next_tempo(tempo)
    if nxt is None or not tempo.ramped:
        return tempo.tempo.beats_per_minute, tempo.sample
    return nxt.tempo.bpm_in(tempo.tempo.note_type), nxt.sample


# ============================================================================
# Tempo-sensitive conversions
# ============================================================================


def beat_at_sample(metrics: Metrics, frame_rate: int, sample: int) -> float:
    """Beat position at ``sample``."""
    tempo = metrics.tempo_at_sample(sample)
    end_bpm, end_sample = ramp_end(metrics, tempo)
    return tempo.beat_at_sample(sample, end_bpm, end_sample, frame_rate)


def sample_at_beat(metrics: Metrics, frame_rate: int, beat: float) -> int:
    """Sample position of ``beat``."""
    tempo = metrics.tempo_at_beat(beat)
    end_bpm, end_sample = ramp_end(metrics, tempo)
    return tempo.sample_at_beat(beat, end_bpm, end_sample, frame_rate)


def tick_at_sample(metrics: Metrics, frame_rate: int, sample: int) -> float:
    return beat_at_sample(metrics, frame_rate, sample) * TICKS_PER_BEAT


def sample_at_tick(metrics: Metrics, frame_rate: int, tick: float) -> int:
    return sample_at_beat(metrics, frame_rate, tick / TICKS_PER_BEAT)


def tempo_at_sample(metrics: Metrics, frame_rate: int, sample: int) -> Tempo:
    """Instantaneous tempo at ``sample`` (follows ramps)."""
    section = metrics.tempo_at_sample(sample)
    if not section.ramped:
        return section.tempo
    end_bpm, end_sample = ramp_end(metrics, section)
    bpm = section.tempo_at_sample(sample, end_bpm, end_sample, frame_rate)
    return Tempo(beats_per_minute=bpm, note_type=section.tempo.note_type)


def samples_plus_beats(metrics: Metrics, frame_rate: int, pos: int, beats: float) -> int:
    return sample_at_beat(metrics, frame_rate, beat_at_sample(metrics, frame_rate, pos) + beats)


def samples_minus_beats(metrics: Metrics, frame_rate: int, pos: int, beats: float) -> int:
    return sample_at_beat(metrics, frame_rate, beat_at_sample(metrics, frame_rate, pos) - beats)


def samplewalk_to_beats(metrics: Metrics, frame_rate: int, pos: int, distance: int) -> float:
    """Beats covered by walking ``distance`` samples from ``pos``."""
    return beat_at_sample(metrics, frame_rate, pos + distance) - beat_at_sample(
        metrics, frame_rate, pos
    )


# ============================================================================
# Meter-sensitive (BBT) conversions
# ============================================================================


def bar_ticks(meter: Meter) -> int:
    """Length of a bar in division ticks."""
    return int(round(meter.divisions_per_bar * TICKS_PER_BEAT))


def bar_length(meter: Meter) -> float:
    """Length of a bar in beats."""
    return bar_ticks(meter) / TICKS_PER_BEAT * meter.quarter_notes_per_division


def bbt_in_meter(section: MeterSection, beat: float) -> BBTTime:
    """BBT position of ``beat`` counted from the meter section ``section``."""
    meter = section.meter
    offset_ticks = int(
        round((beat - section.beat) / meter.quarter_notes_per_division * TICKS_PER_BEAT)
    )
    offset_ticks = max(offset_ticks, 0)
    bars, rem = divmod(offset_ticks, bar_ticks(meter))
    beats, ticks = divmod(rem, TICKS_PER_BEAT)
    return BBTTime(bars=section.bbt.bars + bars, beats=beats + 1, ticks=ticks)


def bbt_at_beat(metrics: Metrics, beat: float) -> BBTTime:
    """Beats to BBT. Positions before zero map to the first bar."""
    beat = max(beat, 0.0)
    return bbt_in_meter(metrics.meter_at_beat(beat), beat)


def beat_at_bbt(metrics: Metrics, bbt: BBTTime) -> float:
    """BBT to beats. Beat numbers past the bar length spill into the next bar."""
    section = metrics.meter_at_bar(bbt.bars)
    meter = section.meter
    ticks = (
        (bbt.bars - section.bbt.bars) * bar_ticks(meter)
        + (bbt.beats - 1) * TICKS_PER_BEAT
        + bbt.ticks
    )
    return section.beat + ticks / TICKS_PER_BEAT * meter.quarter_notes_per_division


def bbt_at_sample(metrics: Metrics, frame_rate: int, sample: int) -> BBTTime:
    return bbt_at_beat(metrics, beat_at_sample(metrics, frame_rate, sample))


def sample_at_bbt(metrics: Metrics, frame_rate: int, bbt: BBTTime) -> int:
    return sample_at_beat(metrics, frame_rate, beat_at_bbt(metrics, bbt))


def samples_plus_bbt(metrics: Metrics, frame_rate: int, pos: int, offset: BBTOffset) -> int:
    """Sample position ``offset`` bars/beats/ticks after ``pos``."""
    bbt = bbt_at_sample(metrics, frame_rate, pos)
    moved = BBTTime(bars=bbt.bars + offset.bars, beats=bbt.beats, ticks=bbt.ticks)
    beat = beat_at_bbt(metrics, moved)
    qpd = metrics.meter_at_beat(beat).meter.quarter_notes_per_division
    beat += (offset.beats + offset.ticks / TICKS_PER_BEAT) * qpd
    return sample_at_beat(metrics, frame_rate, beat)


def samples_minus_bbt(metrics: Metrics, frame_rate: int, pos: int, offset: BBTOffset) -> int:
    """Sample position ``offset`` bars/beats/ticks before ``pos`` (never before zero)."""
    bbt = bbt_at_sample(metrics, frame_rate, pos)
    if bbt.bars - offset.bars < 1:
        return 0
    moved = BBTTime(bars=bbt.bars - offset.bars, beats=bbt.beats, ticks=bbt.ticks)
    beat = beat_at_bbt(metrics, moved)
    qpd = metrics.meter_at_beat(beat).meter.quarter_notes_per_division
    beat -= (offset.beats + offset.ticks / TICKS_PER_BEAT) * qpd
    return sample_at_beat(metrics, frame_rate, max(beat, 0.0))


def bbt_duration_at(
    metrics: Metrics, frame_rate: int, pos: int, offset: BBTOffset, direction: int
) -> int:
    """Length in samples of a BBT duration starting at ``pos``.

    Args:
        direction: >= 0 measures forward from ``pos``, < 0 backward.
    """
    if direction >= 0:
        return samples_plus_bbt(metrics, frame_rate, pos, offset) - pos
    return pos - samples_minus_bbt(metrics, frame_rate, pos, offset)


# ============================================================================
# Metric lookup
# ============================================================================


def metric_at(
    metrics: Metrics, sample: int, cursor: SectionCursor | None = None
) -> tuple[TempoMetric, SectionCursor]:
    """TempoMetric in effect at ``sample`` and a cursor resting on it.

    Passing the cursor returned by a previous call resumes the scan from
    there, which keeps repeated nearby lookups cheap.
    """
    if cursor is None or cursor.metrics is not metrics:
        cursor = metrics.cursor_at_sample(sample)
    else:
        cursor.seek_sample(sample)
    return _metric_from_cursor(cursor), cursor


def metric_at_bbt(metrics: Metrics, bbt: BBTTime) -> TempoMetric:
    cursor = metrics.cursor_at_beat(beat_at_bbt(metrics, bbt))
    return _metric_from_cursor(cursor)


def _metric_from_cursor(cursor: SectionCursor) -> TempoMetric:
    section = cursor.section
    return TempoMetric(
        meter=cursor.meter.meter,
        tempo=cursor.tempo.tempo,
        sample=section.sample,
        beat=section.beat,
    )


# ============================================================================
# Grid rounding
# ============================================================================


def round_to_grid(
    metrics: Metrics,
    frame_rate: int,
    sample: int,
    mode: RoundMode,
    *,
    bars: bool = False,
    subdivisions: int = 1,
) -> int:
    """Snap ``sample`` to the bar, beat or beat-subdivision grid.

    The grid restarts at every meter section. A position already on the
    grid is returned unchanged whatever the direction; negative positions
    are clamped to zero first.

    Args:
        sample: Position to snap.
        mode: DOWN, UP or NEAREST.
        bars: Snap to bars instead of beats.
        subdivisions: Divide each beat into this many grid steps.

    Returns:
        Snapped sample position.
    """
    sample = max(sample, 0)
    subdivisions = max(subdivisions, 1)

    beat = beat_at_sample(metrics, frame_rate, sample)
    meter_index = metrics.meter_index_at_beat(beat)
    section = metrics.meters[meter_index]
    next_meter = (
        metrics.meters[meter_index + 1] if meter_index + 1 < len(metrics.meters) else None
    )

    if bars:
        step = bar_length(section.meter)
    else:
        step = section.meter.quarter_notes_per_division / subdivisions

    idx = math.floor((beat - section.beat) / step)
    down = sample_at_beat(metrics, frame_rate, section.beat + idx * step)
    if down > sample and idx > 0:
        idx -= 1
        down = sample_at_beat(metrics, frame_rate, section.beat + idx * step)

    up_beat = section.beat + (idx + 1) * step
    if next_meter is not None and up_beat > next_meter.beat:
        up_beat = next_meter.beat
    up = sample_at_beat(metrics, frame_rate, up_beat)

    if down == sample or up == sample:
        return sample

    if mode == RoundMode.DOWN:
        return down
    if mode == RoundMode.UP:
        return up
    # Nearest, preferring the later boundary on ties
    if sample - down < up - sample:
        return down
    return up


__all__ = [
    "bar_length",
    "bar_ticks",
    "bbt_at_beat",
    "bbt_at_sample",
    "bbt_duration_at",
    "bbt_in_meter",
    "beat_at_bbt",
    "beat_at_sample",
    "metric_at",
    "metric_at_bbt",
    "ramp_end",
    "round_to_grid",
    "sample_at_bbt",
    "sample_at_beat",
    "sample_at_tick",
    "samples_minus_bbt",
    "samples_minus_beats",
    "samples_plus_bbt",
    "samples_plus_beats",
    "samplewalk_to_beats",
    "tempo_at_sample",
    "tick_at_sample",
]
