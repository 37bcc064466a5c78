"""Musical value models: tempo, meter and bar-beat-tick positions.

These are immutable values. A tempo or meter edit always replaces the
whole value on its section, it never mutates it in place.
"""

from __future__ import annotations

import math
from functools import total_ordering

from pydantic import BaseModel, ConfigDict, Field

from metrum.core.tempo.errors import InvalidTempoError

TICKS_PER_BEAT = 1920
"""Resolution of the tick field of a BBT position."""

MIN_BPM = 0.01
MIN_DIVISIONS_PER_BAR = 1.0
MAX_SAMPLE = 2**62
"""Largest sample position accepted by map mutations."""


class Tempo(BaseModel):
    """Tempo - the speed at which musical time progresses.

    Attributes:
        beats_per_minute: Beats per minute, where a beat is a ``note_type`` note.
        note_type: Note value of one beat (4.0 = quarter note, 8.0 = eighth).

    Example:
        >>> Tempo(beats_per_minute=120.0).samples_per_beat(48000)
        24000.0
    """

    model_config = ConfigDict(frozen=True)

    beats_per_minute: float
    note_type: float = 4.0

    @property
    def quarter_notes_per_minute(self) -> float:
        """Rate at which the (quarter-note based) beat position advances."""
        return self.beats_per_minute * 4.0 / self.note_type

    @property
    def ticks_per_minute(self) -> float:
        return self.quarter_notes_per_minute * TICKS_PER_BEAT

    def samples_per_beat(self, frame_rate: int) -> float:
        """Audio samples per beat of this tempo.

        Args:
            frame_rate: Sample rate in Hz.

        Returns:
            Samples per ``note_type`` beat.
        """
        return (60.0 * frame_rate) / self.beats_per_minute

    def bpm_in(self, note_type: float) -> float:
        """Express this tempo in beats of another note value."""
        return self.quarter_notes_per_minute * note_type / 4.0

    def __str__(self) -> str:
        return f"{self.beats_per_minute:g} bpm (1/{self.note_type:g})"


class Meter(BaseModel):
    """Meter, or time signature.

    ``divisions_per_bar`` is a float because there are musical traditions
    that do not limit themselves to whole numbers of beats per bar.

    Attributes:
        divisions_per_bar: Number of divisions in a bar.
        note_type: Note value of a division (4.0 = quarter, 8.0 = eighth).
    """

    model_config = ConfigDict(frozen=True)

    divisions_per_bar: float
    note_type: float = 4.0

    @property
    def quarter_notes_per_division(self) -> float:
        return 4.0 / self.note_type

    @property
    def quarter_notes_per_bar(self) -> float:
        return self.divisions_per_bar * self.quarter_notes_per_division

    def samples_per_grid(self, tempo: Tempo, frame_rate: int) -> float:
        """Samples between two adjacent grid lines of this meter.

        This is tempo- and meter-sensitive and is not a number of beats.
        """
        return (60.0 * frame_rate) / (
            tempo.beats_per_minute * (self.note_type / tempo.note_type)
        )

    def samples_per_bar(self, tempo: Tempo, frame_rate: int) -> float:
        return self.samples_per_grid(tempo, frame_rate) * self.divisions_per_bar

    def __str__(self) -> str:
        return f"{self.divisions_per_bar:g}/{self.note_type:g}"


@total_ordering
class BBTTime(BaseModel):
    """Bar-beat-tick position (1-indexed bar and beat).

    Attributes:
        bars: Bar number, starting at 1.
        beats: Beat within the bar, starting at 1.
        ticks: Ticks within the beat, ``0 <= ticks < TICKS_PER_BEAT``.
    """

    model_config = ConfigDict(frozen=True)

    bars: int = Field(default=1, ge=1)
    beats: int = Field(default=1, ge=1)
    ticks: int = Field(default=0, ge=0, lt=TICKS_PER_BEAT)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.bars, self.beats, self.ticks)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, BBTTime):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def __str__(self) -> str:
        return f"{self.bars:03d}|{self.beats:02d}|{self.ticks:04d}"

    @classmethod
    def parse(cls, text: str) -> BBTTime:
        """Parse ``bars|beats|ticks`` (ticks optional).

        Raises:
            ValueError: If the text is not a BBT position.
        """
        parts = [p.strip() for p in text.replace(":", "|").split("|")]
        if len(parts) not in (2, 3) or not all(p.lstrip("-").isdigit() for p in parts):
            raise ValueError(f"Invalid BBT position: '{text}'")
        ticks = int(parts[2]) if len(parts) == 3 else 0
        return cls(bars=int(parts[0]), beats=int(parts[1]), ticks=ticks)


class BBTOffset(BaseModel):
    """Zero-based bar-beat-tick distance, used for BBT arithmetic."""

    model_config = ConfigDict(frozen=True)

    bars: int = Field(default=0, ge=0)
    beats: int = Field(default=0, ge=0)
    ticks: int = Field(default=0, ge=0)


class TempoLimits(BaseModel):
    """Floors every tempo and meter must respect before it enters a map.

    The ramp math divides by tempo and takes logarithms of tempo ratios,
    so the map refuses values below these floors instead of clamping them.
    """

    model_config = ConfigDict(frozen=True)

    min_bpm: float = Field(default=MIN_BPM, gt=0.0)
    min_divisions_per_bar: float = Field(default=MIN_DIVISIONS_PER_BAR, gt=0.0)
    min_note_type: float = Field(default=1.0, gt=0.0)

    def check_tempo(self, tempo: Tempo) -> None:
        """Raise InvalidTempoError unless ``tempo`` is usable."""
        if not math.isfinite(tempo.beats_per_minute) or tempo.beats_per_minute < self.min_bpm:
            raise InvalidTempoError(
                f"Tempo {tempo.beats_per_minute} bpm is below the minimum of {self.min_bpm}"
            )
        if not math.isfinite(tempo.note_type) or tempo.note_type < self.min_note_type:
            raise InvalidTempoError(f"Invalid tempo note type {tempo.note_type}")

    def check_meter(self, meter: Meter) -> None:
        """Raise InvalidTempoError unless ``meter`` is usable."""
        if (
            not math.isfinite(meter.divisions_per_bar)
            or meter.divisions_per_bar < self.min_divisions_per_bar
        ):
            raise InvalidTempoError(
                f"Meter with {meter.divisions_per_bar} divisions per bar is below "
                f"the minimum of {self.min_divisions_per_bar}"
            )
        if not math.isfinite(meter.note_type) or meter.note_type < self.min_note_type:
            raise InvalidTempoError(f"Invalid meter note type {meter.note_type}")


class TempoMetric(BaseModel):
    """Meter and tempo in effect at a position, and where they started.

    ``sample`` and ``beat`` are those of the latest metric change at or
    before the queried position.
    """

    model_config = ConfigDict(frozen=True)

    meter: Meter
    tempo: Tempo
    sample: int
    beat: float


__all__ = [
    "BBTOffset",
    "BBTTime",
    "MAX_SAMPLE",
    "MIN_BPM",
    "MIN_DIVISIONS_PER_BAR",
    "Meter",
    "TICKS_PER_BEAT",
    "Tempo",
    "TempoLimits",
    "TempoMetric",
]
