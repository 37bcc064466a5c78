"""Metrics - the ordered sequence of metric sections.

Sections live in an arena keyed by a stable integer handle; the ordered
sequence only holds handles. Callers outside the map keep handles (the
``id`` field of the copies they are given), never the owned instances, so
removing a section can not leave anyone with a dangling object.

Alongside the sequence, per-kind search indexes are rebuilt after every
structural change so lookups are binary searches, and ``SectionCursor``
lets scans resume from the last match instead of searching again.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterator
from dataclasses import dataclass

from metrum.core.tempo.errors import UnknownSectionError
from metrum.core.tempo.models import Meter, Tempo
from metrum.core.tempo.sections import MeterSection, MetricSection, TempoSection

logger = logging.getLogger(__name__)


def position_key(section: MetricSection) -> tuple[int, float, int]:
    """Sequence ordering: sample, then beat, meters before tempos."""
    return (section.sample, section.beat, 1 if isinstance(section, TempoSection) else 0)


def beat_key(section: MetricSection) -> tuple[float, int]:
    return (section.beat, 1 if isinstance(section, TempoSection) else 0)


class Metrics:
    """Arena of metric sections plus their ordered sequence.

    Not thread-safe by itself; ``TempoMap`` guards it with its lock and
    publishes a new instance for every mutation.

    Example:
        >>> metrics = Metrics.initial(Tempo(beats_per_minute=120.0), Meter(divisions_per_bar=4.0))
        >>> len(metrics)
        2
    """

    def __init__(self) -> None:
        self._sections: dict[int, MetricSection] = {}
        self._order: list[int] = []
        self._next_id = 1

        self._tempos: list[TempoSection] = []
        self._meters: list[MeterSection] = []
        self._tempo_positions: dict[int, int] = {}
        self._tempo_samples: list[int] = []
        self._tempo_beats: list[float] = []
        self._meter_samples: list[int] = []
        self._meter_beats: list[float] = []
        self._meter_bars: list[int] = []

    @classmethod
    def initial(cls, tempo: Tempo, meter: Meter) -> Metrics:
        """Create the starting state: one fixed tempo and meter at zero."""
        metrics = cls()
        metrics.insert(MeterSection(meter=meter, movable=False))
        metrics.insert(
            TempoSection(tempo=tempo, movable=False, bar_offset=0.0),
        )
        return metrics

    # ------------------------------------------------------------------
    # Arena
    # ------------------------------------------------------------------

    def insert(self, section: MetricSection) -> int:
        """Take ownership of ``section`` and return its handle."""
        section_id = self._next_id
        self._next_id += 1
        section.id = section_id
        self._sections[section_id] = section
        self._order.append(section_id)
        self.sort()
        return section_id

    def remove(self, section_id: int) -> MetricSection:
        section = self.get(section_id)
        del self._sections[section_id]
        self._order.remove(section_id)
        self.reindex()
        return section

    def get(self, section_id: int) -> MetricSection:
        """Resolve a handle.

        Raises:
            UnknownSectionError: If the handle is not (or no longer) in the arena.
        """
        try:
            return self._sections[section_id]
        except KeyError:
            raise UnknownSectionError(f"No metric section with id {section_id}") from None

    def __contains__(self, section_id: object) -> bool:
        return section_id in self._sections

    def __iter__(self) -> Iterator[MetricSection]:
        for section_id in self._order:
            yield self._sections[section_id]

    def __len__(self) -> int:
        return len(self._order)

    def copy(self) -> Metrics:
        """Deep copy keeping handles, used as the working copy of an edit."""
        clone = Metrics()
        clone._next_id = self._next_id
        for section_id in self._order:
            clone._sections[section_id] = self._sections[section_id].model_copy(deep=True)
        clone._order = list(self._order)
        clone.reindex()
        return clone

    # ------------------------------------------------------------------
    # Ordering and indexes
    # ------------------------------------------------------------------

    def sort(self) -> None:
        self._order.sort(key=lambda i: position_key(self._sections[i]))
        self.reindex()

    def sort_by_beat(self) -> None:
        self._order.sort(key=lambda i: beat_key(self._sections[i]))
        self.reindex()

    def reorder(self, section_ids: list[int]) -> None:
        """Adopt ``section_ids``, a permutation of the current handles, as the order."""
        if sorted(section_ids) != sorted(self._order):
            raise ValueError("New order must list every section exactly once")
        self._order = list(section_ids)
        self.reindex()

    def reindex(self) -> None:
        """Rebuild the per-kind search indexes from the current order."""
        self._tempos = []
        self._meters = []
        for section in self:
            if isinstance(section, TempoSection):
                self._tempos.append(section)
            else:
                self._meters.append(section)
        self._tempo_positions = {t.id: i for i, t in enumerate(self._tempos)}  # type: ignore[misc]
        self._tempo_samples = [t.sample for t in self._tempos]
        self._tempo_beats = [t.beat for t in self._tempos]
        self._meter_samples = [m.sample for m in self._meters]
        self._meter_beats = [m.beat for m in self._meters]
        self._meter_bars = [m.bbt.bars for m in self._meters]

    @property
    def tempos(self) -> list[TempoSection]:
        return self._tempos

    @property
    def meters(self) -> list[MeterSection]:
        return self._meters

    @property
    def first_tempo(self) -> TempoSection:
        return self._tempos[0]

    @property
    def first_meter(self) -> MeterSection:
        return self._meters[0]

    def next_tempo(self, tempo: TempoSection) -> TempoSection | None:
        """Tempo section following ``tempo`` (the end of its ramp), if any."""
        idx = self._tempo_positions.get(tempo.id)  # type: ignore[arg-type]
        if idx is None or idx + 1 >= len(self._tempos):
            return None
        return self._tempos[idx + 1]

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def tempo_index_at_sample(self, sample: int) -> int:
        return max(bisect.bisect_right(self._tempo_samples, sample) - 1, 0)

    def tempo_index_at_beat(self, beat: float) -> int:
        return max(bisect.bisect_right(self._tempo_beats, beat) - 1, 0)

    def meter_index_at_sample(self, sample: int) -> int:
        return max(bisect.bisect_right(self._meter_samples, sample) - 1, 0)

    def meter_index_at_beat(self, beat: float) -> int:
        return max(bisect.bisect_right(self._meter_beats, beat) - 1, 0)

    def meter_index_at_bar(self, bar: int) -> int:
        return max(bisect.bisect_right(self._meter_bars, bar) - 1, 0)

    def tempo_at_sample(self, sample: int) -> TempoSection:
        return self._tempos[self.tempo_index_at_sample(sample)]

    def tempo_at_beat(self, beat: float) -> TempoSection:
        return self._tempos[self.tempo_index_at_beat(beat)]

    def meter_at_sample(self, sample: int) -> MeterSection:
        return self._meters[self.meter_index_at_sample(sample)]

    def meter_at_beat(self, beat: float) -> MeterSection:
        return self._meters[self.meter_index_at_beat(beat)]

    def meter_at_bar(self, bar: int) -> MeterSection:
        return self._meters[self.meter_index_at_bar(bar)]

    def cursor_at_sample(self, sample: int) -> SectionCursor:
        return SectionCursor(
            self, self.tempo_index_at_sample(sample), self.meter_index_at_sample(sample)
        )

    def cursor_at_beat(self, beat: float) -> SectionCursor:
        return SectionCursor(
            self, self.tempo_index_at_beat(beat), self.meter_index_at_beat(beat)
        )


@dataclass
class SectionCursor:
    """Resumable position in a ``Metrics`` sequence.

    Holds the index of the tempo and meter in effect at the last position
    it was moved to. Moving forward is a short linear walk; moving backward
    falls back to a binary search.

    Attributes:
        metrics: Sequence the cursor walks (a published, immutable snapshot).
        tempo_index: Index into ``metrics.tempos``.
        meter_index: Index into ``metrics.meters``.
    """

    metrics: Metrics
    tempo_index: int = 0
    meter_index: int = 0

    @property
    def tempo(self) -> TempoSection:
        return self.metrics.tempos[self.tempo_index]

    @property
    def meter(self) -> MeterSection:
        return self.metrics.meters[self.meter_index]

    @property
    def section(self) -> MetricSection:
        """Latest metric change at or before the cursor position."""
        tempo, meter = self.tempo, self.meter
        return tempo if position_key(tempo) >= position_key(meter) else meter

    @property
    def next_tempo(self) -> TempoSection | None:
        tempos = self.metrics.tempos
        return tempos[self.tempo_index + 1] if self.tempo_index + 1 < len(tempos) else None

    @property
    def next_meter(self) -> MeterSection | None:
        meters = self.metrics.meters
        return meters[self.meter_index + 1] if self.meter_index + 1 < len(meters) else None

    def seek_sample(self, sample: int) -> SectionCursor:
        tempos, meters = self.metrics.tempos, self.metrics.meters
        if tempos[self.tempo_index].sample > sample:
            self.tempo_index = self.metrics.tempo_index_at_sample(sample)
        while self.tempo_index + 1 < len(tempos) and tempos[self.tempo_index + 1].sample <= sample:
            self.tempo_index += 1
        if meters[self.meter_index].sample > sample:
            self.meter_index = self.metrics.meter_index_at_sample(sample)
        while self.meter_index + 1 < len(meters) and meters[self.meter_index + 1].sample <= sample:
            self.meter_index += 1
        return self

    def seek_beat(self, beat: float) -> SectionCursor:
        tempos, meters = self.metrics.tempos, self.metrics.meters
        if tempos[self.tempo_index].beat > beat:
            self.tempo_index = self.metrics.tempo_index_at_beat(beat)
        while self.tempo_index + 1 < len(tempos) and tempos[self.tempo_index + 1].beat <= beat:
            self.tempo_index += 1
        if meters[self.meter_index].beat > beat:
            self.meter_index = self.metrics.meter_index_at_beat(beat)
        while self.meter_index + 1 < len(meters) and meters[self.meter_index + 1].beat <= beat:
            self.meter_index += 1
        return self


__all__ = [
    "Metrics",
    "SectionCursor",
    "beat_key",
    "position_key",
]
