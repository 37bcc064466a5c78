"""Metric sections - positioned tempo and meter changes.

A section carries its position twice, as a sample position and as a beat
position. Its ``lock_style`` says which of the two is authoritative; the
other is refreshed by the map's recompute pass.

TempoSection also owns the ramp arithmetic. A ramp only has a shape in
the context of the following tempo section, so every ramp operation takes
the end tempo and end position as explicit arguments instead of caching
them. Internally the math works in minutes since the section start and in
ticks per minute, which keeps it independent of the sample rate:

    tick_tempo(t) = a * exp(c * t)

``a`` is this section's tempo in ticks per minute and ``c`` is solved so
that the curve reaches the end tempo at the end time. The curve integrates
in closed form, so ticks and time convert both ways without iteration.
When ``c == 0`` (constant sections, equal tempos) the linear form is used.
"""

from __future__ import annotations

import math
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from metrum.core.tempo.enums import PositionLockStyle, TempoType
from metrum.core.tempo.models import TICKS_PER_BEAT, BBTTime, Meter, Tempo


def sample_to_minute(sample: float, frame_rate: int) -> float:
    """Convert a sample count to minutes."""
    return sample / (60.0 * frame_rate)


def minute_to_sample(time: float, frame_rate: int) -> int:
    """Convert minutes to the nearest whole sample."""
    return int(math.floor((time * 60.0 * frame_rate) + 0.5))


class MetricSectionBase(BaseModel):
    """Fields shared by tempo and meter sections.

    Attributes:
        id: Handle assigned by the owning ``Metrics`` arena (None until inserted).
        beat: Position in quarter-note beats from the start of the timeline.
        sample: Position in samples from the start of the timeline.
        movable: False only for the initial tempo and meter at position zero.
        lock_style: Which of ``beat``/``sample`` is authoritative.
    """

    model_config = ConfigDict(extra="forbid")

    id: int | None = None
    beat: float = 0.0
    sample: int = 0
    movable: bool = True
    lock_style: PositionLockStyle = PositionLockStyle.MUSIC_TIME

    @property
    def music_locked(self) -> bool:
        return self.lock_style == PositionLockStyle.MUSIC_TIME


class MeterSection(MetricSectionBase):
    """A position where the meter changes. Always starts a new bar."""

    kind: Literal["meter"] = "meter"
    meter: Meter
    bbt: BBTTime = Field(default_factory=BBTTime)

    def __str__(self) -> str:
        return (
            f"Meter {self.meter} at {self.bbt} "
            f"(beat {self.beat:.3f}, sample {self.sample}, {self.lock_style.value})"
        )


class TempoSection(MetricSectionBase):
    """A position where the tempo changes, constant or ramped to the next one.

    Attributes:
        tempo: Tempo at the start of the section.
        tempo_type: RAMP or CONSTANT.
        bar_offset: Fractional position inside the enclosing bar
            (0.0 = downbeat, 0.5 = halfway). -1.0 until first anchored.
        bbt: Enclosing bar position from the last recompute.
    """

    kind: Literal["tempo"] = "tempo"
    tempo: Tempo
    tempo_type: TempoType = TempoType.CONSTANT
    bar_offset: float = -1.0
    bbt: BBTTime = Field(default_factory=BBTTime)

    def __str__(self) -> str:
        return (
            f"Tempo {self.tempo} {self.tempo_type.value.lower()} at beat {self.beat:.3f} "
            f"(sample {self.sample}, {self.lock_style.value}, bar offset {self.bar_offset:.3f})"
        )

    @property
    def ramped(self) -> bool:
        return self.tempo_type == TempoType.RAMP

    # ------------------------------------------------------------------
    # Ramp shape
    # ------------------------------------------------------------------

    def _tick_tempo(self, bpm: float) -> float:
        """bpm in this section's note type -> ticks per minute."""
        return bpm * 4.0 / self.tempo.note_type * TICKS_PER_BEAT

    def _bpm(self, tick_tempo: float) -> float:
        return tick_tempo / TICKS_PER_BEAT * self.tempo.note_type / 4.0

    def ramp_coefficients(self, end_bpm: float, end_time: float) -> tuple[float, float]:
        """Solve ``a`` and ``c`` of the tempo curve.

        ``a`` pins the curve to this section's tempo at ``t = 0`` and ``c``
        makes it reach ``end_bpm`` at ``end_time``.

        Args:
            end_bpm: Tempo of the next section, in this section's note type.
            end_time: Minutes from this section to the next.

        Returns:
            Tuple of ``(a, c)``; ``c`` is 0.0 for constant or zero-length sections.
        """
        a = self.tempo.ticks_per_minute
        if not self.ramped or end_time <= 0.0:
            return a, 0.0
        return a, math.log(self._tick_tempo(end_bpm) / a) / end_time

    def ramp_coefficients_for_ticks(
        self, end_bpm: float, end_ticks: float
    ) -> tuple[float, float]:
        """Solve ``a`` and ``c`` when the end is known in ticks, not time.

        Along an exponential ramp the tempo is linear in ticks, so
        ``c = (end_tempo - a) / end_ticks``.
        """
        a = self.tempo.ticks_per_minute
        if not self.ramped or end_ticks <= 0.0:
            return a, 0.0
        return a, (self._tick_tempo(end_bpm) - a) / end_ticks

    # ------------------------------------------------------------------
    # Time based (minutes since section start)
    # ------------------------------------------------------------------

    def tempo_at_time(self, time: float, end_bpm: float, end_time: float) -> float:
        """Tempo in bpm ``time`` minutes after the section start."""
        a, c = self.ramp_coefficients(end_bpm, end_time)
        return self._bpm(a * math.exp(c * time))

    def time_at_tempo(self, bpm: float, end_bpm: float, end_time: float) -> float:
        """Minutes after the section start at which the ramp passes ``bpm``.

        A constant section never changes tempo, so the answer is 0.0.
        """
        a, c = self.ramp_coefficients(end_bpm, end_time)
        if c == 0.0:
            return 0.0
        return math.log(self._tick_tempo(bpm) / a) / c

    def tick_at_time(self, time: float, end_bpm: float, end_time: float) -> float:
        """Ticks elapsed ``time`` minutes after the section start."""
        a, c = self.ramp_coefficients(end_bpm, end_time)
        return _tick_at_time(a, c, time)

    def time_at_tick(self, tick: float, end_bpm: float, end_time: float) -> float:
        """Minutes after the section start at which ``tick`` ticks have elapsed."""
        a, c = self.ramp_coefficients(end_bpm, end_time)
        return _time_at_tick(a, c, tick)

    def beat_at_time(self, time: float, end_bpm: float, end_time: float) -> float:
        return self.tick_at_time(time, end_bpm, end_time) / TICKS_PER_BEAT

    def time_at_beat(self, beat: float, end_bpm: float, end_time: float) -> float:
        return self.time_at_tick(beat * TICKS_PER_BEAT, end_bpm, end_time)

    def end_time_for_beats(self, end_bpm: float, end_beats: float) -> float:
        """Minutes needed to cover ``end_beats`` beats while ramping to ``end_bpm``.

        Used when the next section is music-locked, i.e. its beat is known and
        its time has to be derived.
        """
        end_ticks = end_beats * TICKS_PER_BEAT
        a, c = self.ramp_coefficients_for_ticks(end_bpm, end_ticks)
        return _time_at_tick(a, c, end_ticks)

    # ------------------------------------------------------------------
    # Sample based (absolute positions)
    # ------------------------------------------------------------------

    def _end_time(self, end_sample: int, frame_rate: int) -> float:
        return sample_to_minute(end_sample - self.sample, frame_rate)

    def tempo_at_sample(
        self, sample: int, end_bpm: float, end_sample: int, frame_rate: int
    ) -> float:
        """Instantaneous tempo (bpm) at an absolute sample position."""
        return self.tempo_at_time(
            sample_to_minute(sample - self.sample, frame_rate),
            end_bpm,
            self._end_time(end_sample, frame_rate),
        )

    def sample_at_tempo(
        self, bpm: float, end_bpm: float, end_sample: int, frame_rate: int
    ) -> int:
        time = self.time_at_tempo(bpm, end_bpm, self._end_time(end_sample, frame_rate))
        return minute_to_sample(time, frame_rate) + self.sample

    def tick_at_sample(
        self, sample: int, end_bpm: float, end_sample: int, frame_rate: int
    ) -> float:
        """Absolute tick position (from timeline start) at ``sample``."""
        ticks = self.tick_at_time(
            sample_to_minute(sample - self.sample, frame_rate),
            end_bpm,
            self._end_time(end_sample, frame_rate),
        )
        return ticks + self.beat * TICKS_PER_BEAT

    def sample_at_tick(
        self, tick: float, end_bpm: float, end_sample: int, frame_rate: int
    ) -> int:
        """Absolute sample position of an absolute tick position."""
        time = self.time_at_tick(
            tick - self.beat * TICKS_PER_BEAT,
            end_bpm,
            self._end_time(end_sample, frame_rate),
        )
        return minute_to_sample(time, frame_rate) + self.sample

    def beat_at_sample(
        self, sample: int, end_bpm: float, end_sample: int, frame_rate: int
    ) -> float:
        """Absolute beat position at ``sample``."""
        return self.tick_at_sample(sample, end_bpm, end_sample, frame_rate) / TICKS_PER_BEAT

    def sample_at_beat(
        self, beat: float, end_bpm: float, end_sample: int, frame_rate: int
    ) -> int:
        """Absolute sample position of an absolute beat position."""
        return self.sample_at_tick(beat * TICKS_PER_BEAT, end_bpm, end_sample, frame_rate)


def _tick_at_time(a: float, c: float, time: float) -> float:
    if c == 0.0:
        return a * time
    return (math.expm1(c * time) * a) / c


def _time_at_tick(a: float, c: float, tick: float) -> float:
    if c == 0.0:
        return tick / a
    # Past the asymptote of a decelerating ramp; never reached inside a section.
    arg = max((c * tick) / a, -1.0 + 1e-15)
    return math.log1p(arg) / c


MetricSection = Annotated[TempoSection | MeterSection, Field(discriminator="kind")]
"""Tagged variant of the two section kinds."""


__all__ = [
    "MeterSection",
    "MetricSection",
    "MetricSectionBase",
    "TempoSection",
    "minute_to_sample",
    "sample_to_minute",
]
