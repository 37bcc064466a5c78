"""Recompute - restore cross-section consistency after an edit.

Every section has one authoritative coordinate (by lock style) and one
derived coordinate. After any structural change this pass walks the
timeline once, start to end, carrying the governing tempo and meter, and
re-derives:

* the sample position of music-locked sections,
* the beat position of audio-locked sections,
* the bar number of audio-locked meters,
* the enclosing bar and bar offset of every tempo section.

Music-locked sections are known by beat (or bar) and audio-locked ones by
sample, so neither coordinate alone orders them. The walk keeps one queue
per kind and lock style and merges them: at each tempo it first settles
which tempo comes next, because that successor fixes the shape of the
ramp, and only then places the meters that fall inside the section. The
resulting order is the sequence order, so beats and samples rise together.

When the edit was a meter change, music-locked tempo sections are first
re-anchored from their cached ``(bar, bar_offset)`` so they keep their
relative place inside their bar while the bar lines move under them.

The pass runs on the working copy of a mutation, under the map's write
lock, and is the only place where cross-section consistency is enforced.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable

from metrum.core.tempo.metrics import Metrics, position_key
from metrum.core.tempo.models import BBTTime
from metrum.core.tempo.sections import (
    MeterSection,
    MetricSection,
    TempoSection,
    minute_to_sample,
)
from metrum.core.tempo.timeline import bar_length, bbt_in_meter
from metrum.core.utils.logging import get_logger, log_performance

logger = get_logger(__name__)

ClampHook = Callable[[MetricSection, MetricSection], None]
"""Called with ``(clamped_section, previous_section)`` when ordering is repaired."""

_BAR_EPSILON = 1e-9


@log_performance
def recompute(
    metrics: Metrics,
    frame_rate: int,
    *,
    reassign_tempo_bbt: bool = True,
    end: int | None = None,
    on_clamp: ClampHook | None = None,
) -> int:
    """Re-derive every non-authoritative coordinate in ``metrics``.

    Args:
        metrics: Sequence to update in place.
        frame_rate: Sample rate in Hz.
        reassign_tempo_bbt: True after tempo edits (bar offsets follow the
            tempo positions). False after meter edits (music-locked tempos
            follow their bar offsets).
        end: Optional sample bound; sections starting after it are left
            untouched. Used for incremental updates while dragging.
        on_clamp: Diagnostic hook for ordering repairs.

    Returns:
        Number of sections that had to be clamped.
    """
    if not reassign_tempo_bbt:
        _reanchor_tempos(metrics)

    walk = _Walk(metrics, frame_rate, end, on_clamp)
    metrics.reorder(walk.run())
    return walk.clamped


def _ramp_context(
    tempo: TempoSection, nxt: TempoSection | None, frame_rate: int
) -> tuple[float, int]:
    """End bpm and end sample shaping ``tempo``'s section.

    The successor's authoritative coordinate fixes the ramp: a music-locked
    successor is reached after a known number of beats, an audio-locked one
    at a known sample.
    """
    if nxt is None or not tempo.ramped:
        return tempo.tempo.beats_per_minute, tempo.sample
    end_bpm = nxt.tempo.bpm_in(tempo.tempo.note_type)
    if nxt.music_locked:
        end_time = tempo.end_time_for_beats(end_bpm, nxt.beat - tempo.beat)
        return end_bpm, tempo.sample + minute_to_sample(end_time, frame_rate)
    return end_bpm, nxt.sample


def _bar_start(meter: MeterSection, bar: int) -> float:
    return meter.beat + (bar - meter.bbt.bars) * bar_length(meter.meter)


def _anchor_bar(tempo: TempoSection, meter: MeterSection) -> None:
    tempo.bbt = bbt_in_meter(meter, tempo.beat)
    length = bar_length(meter.meter)
    tempo.bar_offset = (tempo.beat - _bar_start(meter, tempo.bbt.bars)) / length


def _bar_at_or_after(meter: MeterSection, beat: float) -> int:
    """Bar number an audio-locked meter gets: the next whole bar of ``meter``.

    The bar it interrupts is cut short.
    """
    bars = math.ceil((beat - meter.beat) / bar_length(meter.meter) - _BAR_EPSILON)
    return meter.bbt.bars + max(bars, 1)


class _Walk:
    """One start-to-end merge of the four section queues.

    ``tempo``/``meter`` are the sections in effect at the walk position and
    ``ctx`` is the ramp context of ``tempo``, valid once its successor has
    been chosen.
    """

    def __init__(
        self,
        metrics: Metrics,
        frame_rate: int,
        end: int | None,
        on_clamp: ClampHook | None,
    ) -> None:
        self.frame_rate = frame_rate
        self.end = end
        self.on_clamp = on_clamp
        self.clamped = 0

        self.sections = list(metrics)
        self.stale = {s.id: s.sample for s in self.sections}
        self.tempo = next((t for t in metrics.tempos if not t.movable), metrics.first_tempo)
        self.meter = next((m for m in metrics.meters if not m.movable), metrics.first_meter)

        tempos = [t for t in metrics.tempos if t is not self.tempo]
        meters = [m for m in metrics.meters if m is not self.meter]
        self.music_tempos = deque(
            sorted((t for t in tempos if t.music_locked), key=lambda t: t.beat)
        )
        self.audio_tempos = deque(
            sorted((t for t in tempos if not t.music_locked), key=lambda t: t.sample)
        )
        self.music_meters = deque(
            sorted((m for m in meters if m.music_locked), key=lambda m: (m.bbt.bars, m.beat))
        )
        self.audio_meters = deque(
            sorted((m for m in meters if not m.music_locked), key=lambda m: m.sample)
        )

        self.ctx: tuple[float, int] = (0.0, 0)
        self.order: list[int] = []
        self.last: MetricSection | None = None

    def run(self) -> list[int]:
        """Place every section and return the new sequence order."""
        self.meter.beat, self.meter.sample, self.meter.bbt = 0.0, 0, BBTTime()
        self.tempo.beat, self.tempo.sample = 0.0, 0
        self._append(self.meter)
        self._append(self.tempo)
        _anchor_bar(self.tempo, self.meter)

        while self.music_tempos or self.audio_tempos:
            nxt = self._next_tempo()
            self.ctx = _ramp_context(self.tempo, nxt, self.frame_rate)
            if nxt.music_locked:
                beat = nxt.beat
                sample = self.tempo.sample_at_beat(beat, *self.ctx, self.frame_rate)
            else:
                sample = nxt.sample
                beat = self.tempo.beat_at_sample(sample, *self.ctx, self.frame_rate)

            if not self._place_meters(beat, sample) or self._past_end(nxt):
                return self._finish()
            (self.music_tempos if nxt.music_locked else self.audio_tempos).popleft()
            self._commit(nxt, beat, sample)
            _anchor_bar(nxt, self.meter)
            self.tempo = nxt

        self.ctx = _ramp_context(self.tempo, None, self.frame_rate)
        self._place_meters(None, None)
        return self._finish()

    def _next_tempo(self) -> TempoSection:
        """Successor of the current tempo.

        A music-locked candidate comes first if the ramp shaped towards it
        reaches it no later than the audio-locked candidate's sample.
        """
        music = self.music_tempos[0] if self.music_tempos else None
        audio = self.audio_tempos[0] if self.audio_tempos else None
        if audio is None:
            return music  # type: ignore[return-value]
        if music is None:
            return audio
        ctx = _ramp_context(self.tempo, music, self.frame_rate)
        if self.tempo.sample_at_beat(music.beat, *ctx, self.frame_rate) <= audio.sample:
            return music
        return audio

    def _place_meters(self, until_beat: float | None, until_sample: int | None) -> bool:
        """Place the meters at or before the next tempo; False once past ``end``."""
        while self.music_meters or self.audio_meters:
            meter, beat, sample = self._next_meter()
            if until_beat is not None:
                if meter.music_locked and beat > until_beat:
                    return True
                if not meter.music_locked and sample > until_sample:  # type: ignore[operator]
                    return True
            if self._past_end(meter):
                return False

            (self.music_meters if meter.music_locked else self.audio_meters).popleft()
            if meter.music_locked and meter.bbt.bars <= self.meter.bbt.bars:
                self._commit(meter, beat, sample, behind=self.meter)
            else:
                self._commit(meter, beat, sample)
            if not meter.music_locked:
                meter.bbt = BBTTime(bars=_bar_at_or_after(self.meter, meter.beat))
            self.meter = meter
        return True

    def _next_meter(self) -> tuple[MeterSection, float, int]:
        music = self.music_meters[0] if self.music_meters else None
        audio = self.audio_meters[0] if self.audio_meters else None
        if audio is not None:
            audio_beat = self.tempo.beat_at_sample(audio.sample, *self.ctx, self.frame_rate)
        if music is not None:
            beat = _bar_start(self.meter, music.bbt.bars)
            if audio is None or beat <= audio_beat:
                return music, beat, self.tempo.sample_at_beat(beat, *self.ctx, self.frame_rate)
        return audio, audio_beat, audio.sample  # type: ignore[return-value,union-attr]

    def _past_end(self, section: MetricSection) -> bool:
        return self.end is not None and self.stale[section.id] > self.end

    def _commit(
        self,
        section: MetricSection,
        beat: float,
        sample: int,
        behind: MetricSection | None = None,
    ) -> None:
        """Give ``section`` its position, clamping it onto ``behind`` if out of order."""
        last = self.last
        if behind is None and last is not None and (beat < last.beat or sample < last.sample):
            behind = last
        if behind is not None:
            logger.warning(
                "Metric section %s at beat %.6f, sample %d precedes %s; clamping",
                section.id,
                beat,
                sample,
                behind.id,
            )
            beat, sample = behind.beat, behind.sample
            self.clamped += 1
        section.beat = beat
        section.sample = sample
        self._append(section)
        if behind is not None and self.on_clamp is not None:
            self.on_clamp(section, behind)

    def _append(self, section: MetricSection) -> None:
        self.order.append(section.id)  # type: ignore[arg-type]
        self.last = section

    def _finish(self) -> list[int]:
        placed = set(self.order)
        rest = sorted((s for s in self.sections if s.id not in placed), key=position_key)
        return self.order + [s.id for s in rest]  # type: ignore[misc]


def _reanchor_tempos(metrics: Metrics) -> None:
    """Move music-locked tempos back to their bar offset on the new bar grid."""
    meters = sorted(metrics.meters, key=lambda m: (m.bbt.bars, m.beat))
    for i, meter in enumerate(meters):
        if i > 0 and meter.movable and meter.music_locked:
            meter.beat = _bar_start(meters[i - 1], meter.bbt.bars)

    for tempo in metrics.tempos:
        if not tempo.movable or not tempo.music_locked or tempo.bar_offset < 0.0:
            continue
        governing = meters[0]
        for meter in meters:
            if meter.bbt.bars > tempo.bbt.bars:
                break
            governing = meter
        tempo.beat = _bar_start(governing, tempo.bbt.bars) + tempo.bar_offset * bar_length(
            governing.meter
        )


__all__ = [
    "ClampHook",
    "recompute",
]
