"""Grid generation - bar and beat crossings for renderers.

``get_grid`` walks the beat grid between two sample bounds with forward
cursors, so a scan over thousands of grid points never searches the
sequence from the start again. ``tempo_curve`` samples the instantaneous
tempo for curve displays.
"""

from __future__ import annotations

import math

import numpy as np
from pydantic import BaseModel, ConfigDict

from metrum.core.tempo.metrics import Metrics
from metrum.core.tempo.models import BBTTime
from metrum.core.tempo.sections import MeterSection, MetricSection, TempoSection
from metrum.core.tempo.timeline import bar_length, beat_at_sample, ramp_end

_GRID_EPSILON = 1e-9


class BBTPoint(BaseModel):
    """One bar or beat line of the grid.

    Attributes:
        sample: Sample position of the line.
        bar: Bar number (1-indexed).
        beat: Beat within the bar (1-indexed); 1 means a bar line.
        meter: Meter section governing the line.
        tempo: Tempo section governing the line.
    """

    model_config = ConfigDict(frozen=True)

    sample: int
    bar: int
    beat: int
    meter: MeterSection
    tempo: TempoSection

    @property
    def bbt(self) -> BBTTime:
        return BBTTime(bars=self.bar, beats=self.beat, ticks=0)

    @property
    def is_bar(self) -> bool:
        return self.beat == 1


def get_grid(metrics: Metrics, frame_rate: int, start: int, end: int) -> list[BBTPoint]:
    """Every beat and bar line in ``[start, end)``.

    Args:
        metrics: Published sequence to scan.
        frame_rate: Sample rate in Hz.
        start: First sample of the interval; clamped to zero.
        end: Sample after the interval.

    Returns:
        Grid points in ascending sample order; empty when ``end <= start``.
    """
    start = max(start, 0)
    if end <= start:
        return []

    copies: dict[int, MetricSection] = {}

    def copy_of(section: MetricSection) -> MetricSection:
        key = section.id if section.id is not None else id(section)
        if key not in copies:
            copies[key] = section.model_copy(deep=True)
        return copies[key]

    first_beat = beat_at_sample(metrics, frame_rate, start)
    cursor = metrics.cursor_at_beat(first_beat)
    meter = cursor.meter
    length = bar_length(meter.meter)
    qpd = meter.meter.quarter_notes_per_division

    offset = max(first_beat - meter.beat, 0.0)
    bar_idx = math.floor(offset / length + _GRID_EPSILON)
    beat_idx = max(math.ceil((offset - bar_idx * length) / qpd - _GRID_EPSILON), 0)
    if beat_idx * qpd >= length - _GRID_EPSILON:
        bar_idx += 1
        beat_idx = 0

    points: list[BBTPoint] = []
    while True:
        beat = meter.beat + bar_idx * length + beat_idx * qpd
        nxt = cursor.next_meter
        if nxt is not None and beat >= nxt.beat - _GRID_EPSILON:
            beat = nxt.beat
            cursor.seek_beat(beat)
            meter = cursor.meter
            length = bar_length(meter.meter)
            qpd = meter.meter.quarter_notes_per_division
            bar_idx = 0
            beat_idx = 0
        else:
            cursor.seek_beat(beat)

        tempo = cursor.tempo
        end_bpm, end_sample = ramp_end(metrics, tempo)
        sample = tempo.sample_at_beat(beat, end_bpm, end_sample, frame_rate)
        if sample >= end:
            break
        if sample >= start:
            points.append(
                BBTPoint(
                    sample=sample,
                    bar=meter.bbt.bars + bar_idx,
                    beat=beat_idx + 1,
                    meter=copy_of(meter),
                    tempo=copy_of(tempo),
                )
            )

        beat_idx += 1
        if beat_idx * qpd >= length - _GRID_EPSILON:
            bar_idx += 1
            beat_idx = 0

    return points


def tempo_curve(
    metrics: Metrics, frame_rate: int, start: int, end: int, points: int = 64
) -> tuple[np.ndarray, np.ndarray]:
    """Sample the instantaneous tempo between two positions.

    Ramped sections are evaluated with the closed-form exponential, one
    vectorised evaluation per tempo section.

    Args:
        start: First sample position (clamped to zero).
        end: Last sample position (inclusive).
        points: Number of evenly spaced samples.

    Returns:
        Tuple of ``(sample_positions, bpm)`` arrays.
    """
    start = max(start, 0)
    end = max(end, start)
    positions = np.linspace(start, end, max(points, 1)).round().astype(np.int64)
    bpm = np.empty(positions.shape, dtype=np.float64)

    tempos = metrics.tempos
    for i, section in enumerate(tempos):
        upper = tempos[i + 1].sample if i + 1 < len(tempos) else None
        mask = positions >= section.sample if i > 0 else np.ones(positions.shape, dtype=bool)
        if upper is not None:
            mask &= positions < upper
        if not mask.any():
            continue
        end_bpm, end_sample = ramp_end(metrics, section)
        end_time = (end_sample - section.sample) / (60.0 * frame_rate)
        a, c = section.ramp_coefficients(end_bpm, end_time)
        times = (positions[mask] - section.sample) / (60.0 * frame_rate)
        tick_tempo = a * np.exp(c * times)
        bpm[mask] = section.tempo.beats_per_minute * tick_tempo / a

    return positions, bpm


__all__ = [
    "BBTPoint",
    "get_grid",
    "tempo_curve",
]
