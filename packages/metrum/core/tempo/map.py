"""TempoMap - the authority for musical time on a timeline.

The map owns the ordered sequence of tempo and meter sections and answers
every sample <-> beat <-> BBT question the rest of the application asks.

Concurrency model:

* Queries take the read lock for the computation only.
* Mutations take the write lock for their whole duration. They edit a deep
  copy of the published sequence, recompute it, and swap it in, so a
  failing edit leaves the map exactly as it was and readers never see a
  half-applied change.
* The change notification goes out after the write lock is released.

Callers never receive the owned sections. Every section handed out is a
copy carrying its handle (``id``), and mutations accept either such a copy
or the bare handle.
"""

from __future__ import annotations

import io
import logging
import math
import queue
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, TextIO, TypeVar

from pydantic import ValidationError

from metrum.core.tempo import grid, timeline
from metrum.core.tempo.enums import PositionLockStyle, RoundMode, TempoType
from metrum.core.tempo.errors import (
    InvalidPositionError,
    NotRemovableError,
    StateLoadError,
    TempoMapError,
    UnknownSectionError,
)
from metrum.core.tempo.lock import RWLock
from metrum.core.tempo.metrics import Metrics, SectionCursor
from metrum.core.tempo.models import (
    MAX_SAMPLE,
    BBTOffset,
    BBTTime,
    Meter,
    Tempo,
    TempoLimits,
    TempoMetric,
)
from metrum.core.tempo.notify import ChangeCallback, ChangeNotifier
from metrum.core.tempo.recompute import ClampHook, recompute
from metrum.core.tempo.sections import MeterSection, MetricSection, TempoSection
from metrum.core.tempo.state import (
    TempoMapState,
    metrics_from_state,
    read_state_file,
    state_from_metrics,
    write_state_file,
)

if TYPE_CHECKING:
    import numpy as np

    from metrum.core.config.models import AppConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

SectionRef = TempoSection | MeterSection | int
"""A section copy handed out by the map, or its bare handle."""

DEFAULT_TEMPO = Tempo(beats_per_minute=120.0, note_type=4.0)
DEFAULT_METER = Meter(divisions_per_bar=4.0, note_type=4.0)


class TempoMap:
    """Tempo and meter map for one session.

    Args:
        frame_rate: Sample rate in Hz; fixed for the lifetime of the map.
        default_tempo: Value of the initial tempo section.
        default_meter: Value of the initial meter section.
        limits: Floors for tempo and meter values.
        on_clamp: Diagnostic hook called when recompute has to repair
            section ordering.
        subdivisions: Beat subdivisions ``round_to_beat_subdivision`` snaps to
            when none are given.
        curve_points: Points ``tempo_curve`` samples when none are given.

    Example:
        >>> tmap = TempoMap(48000)
        >>> tmap.add_tempo(Tempo(beats_per_minute=140.0), 8.0) is not None
        True
        >>> tmap.sample_at_beat(8.0)
        192000
    """

    def __init__(
        self,
        frame_rate: int,
        *,
        default_tempo: Tempo | None = None,
        default_meter: Meter | None = None,
        limits: TempoLimits | None = None,
        on_clamp: ClampHook | None = None,
        subdivisions: int = 1,
        curve_points: int = 64,
    ) -> None:
        if frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {frame_rate}")

        self._frame_rate = frame_rate
        self._limits = limits or TempoLimits()
        self._default_tempo = default_tempo or DEFAULT_TEMPO
        self._default_meter = default_meter or DEFAULT_METER
        self._limits.check_tempo(self._default_tempo)
        self._limits.check_meter(self._default_meter)
        self._on_clamp = on_clamp
        self._subdivisions = subdivisions
        self._curve_points = curve_points

        self._lock = RWLock()
        self._notifier = ChangeNotifier()
        self._metrics = self._initial_metrics()

    @classmethod
    def from_config(cls, config: AppConfig, *, on_clamp: ClampHook | None = None) -> TempoMap:
        """Build a map from the application configuration."""
        return cls(
            config.frame_rate,
            default_tempo=config.default_tempo.to_tempo(),
            default_meter=config.default_meter.to_meter(),
            limits=config.limits,
            on_clamp=on_clamp,
            subdivisions=config.grid.default_subdivisions,
            curve_points=config.grid.curve_points,
        )

    # ------------------------------------------------------------------
    # Properties and notification
    # ------------------------------------------------------------------

    @property
    def frame_rate(self) -> int:
        return self._frame_rate

    @property
    def limits(self) -> TempoLimits:
        return self._limits

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Call ``callback`` (on the dispatcher thread) after every change."""
        return self._notifier.subscribe(callback)

    def open_channel(self) -> queue.Queue[object]:
        """Queue receiving one token per change, for polling collaborators."""
        return self._notifier.open_channel()

    def close(self) -> None:
        self._notifier.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _initial_metrics(self) -> Metrics:
        metrics = Metrics.initial(self._default_tempo, self._default_meter)
        recompute(metrics, self._frame_rate, on_clamp=self._on_clamp)
        return metrics

    @contextmanager
    def _reading(self) -> Iterator[Metrics]:
        with self._lock.read():
            yield self._metrics

    def _edit(
        self, action: str, apply: Callable[[Metrics], T], *, notify: bool = True
    ) -> T | None:
        """Run ``apply`` on a working copy and publish it if it succeeds.

        Returns whatever ``apply`` returned, or None when it raised a
        TempoMapError (the published sequence is left untouched). A truthy
        result is followed by one change notification.
        """
        try:
            with self._lock.write():
                working = self._metrics.copy()
                result = apply(working)
                self._metrics = working
        except TempoMapError as e:
            logger.warning("%s failed: %s", action, e)
            return None

        if notify and result:
            self._notifier.emit()
        return result

    def _recompute(
        self, metrics: Metrics, *, reassign_tempo_bbt: bool = True, end: int | None = None
    ) -> None:
        """Recompute ``metrics``; positions past MAX_SAMPLE fail the edit.

        Raises:
            InvalidPositionError: If a section lands beyond MAX_SAMPLE or its
                position can not be represented at all.
        """
        try:
            recompute(
                metrics,
                self._frame_rate,
                reassign_tempo_bbt=reassign_tempo_bbt,
                end=end,
                on_clamp=self._on_clamp,
            )
        except (ArithmeticError, ValueError) as e:
            raise InvalidPositionError(f"Section position out of range: {e}") from e
        last = max(s.sample for s in metrics)
        if last > MAX_SAMPLE:
            raise InvalidPositionError(f"Section at sample {last} is beyond {MAX_SAMPLE}")

    def _sample_at_beat(self, metrics: Metrics, beat: float) -> int:
        try:
            sample = timeline.sample_at_beat(metrics, self._frame_rate, beat)
        except ArithmeticError:
            raise InvalidPositionError(f"Beat {beat} is out of range") from None
        if sample > MAX_SAMPLE:
            raise InvalidPositionError(f"Beat {beat} lies beyond sample {MAX_SAMPLE}")
        return sample

    @staticmethod
    def _handle(ref: SectionRef) -> int:
        if isinstance(ref, int):
            return ref
        if ref.id is None:
            raise UnknownSectionError("Section was never added to a tempo map")
        return ref.id

    def _tempo_section(self, metrics: Metrics, ref: SectionRef) -> TempoSection:
        section = metrics.get(self._handle(ref))
        if not isinstance(section, TempoSection):
            raise UnknownSectionError(f"Section {section.id} is not a tempo section")
        return section

    def _meter_section(self, metrics: Metrics, ref: SectionRef) -> MeterSection:
        section = metrics.get(self._handle(ref))
        if not isinstance(section, MeterSection):
            raise UnknownSectionError(f"Section {section.id} is not a meter section")
        return section

    @staticmethod
    def _check_beat(beat: float) -> float:
        beat = float(beat)
        if not math.isfinite(beat) or beat <= 0.0:
            raise InvalidPositionError(f"Beat {beat} is the start of the timeline or invalid")
        return beat

    @staticmethod
    def _check_sample(sample: int) -> int:
        if isinstance(sample, float) and not math.isfinite(sample):
            raise InvalidPositionError(f"Sample position {sample} is not finite")
        sample = int(sample)
        if sample <= 0 or sample > MAX_SAMPLE:
            raise InvalidPositionError(
                f"Sample {sample} is the start of the timeline or out of range"
            )
        return sample

    @staticmethod
    def _check_bar(position: object) -> BBTTime:
        if not isinstance(position, BBTTime):
            raise InvalidPositionError(f"Music-locked meters need a BBT position, got {position!r}")
        if position.beats != 1 or position.ticks != 0:
            position = BBTTime(bars=position.bars + 1)
        if position.bars <= 1:
            raise InvalidPositionError("Bar 1 holds the initial meter")
        return position

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> list[MetricSection]:
        """Copies of every section in timeline order, for renderers."""
        with self._reading() as metrics:
            return [s.model_copy(deep=True) for s in metrics]

    def tempo_sections(self) -> list[TempoSection]:
        with self._reading() as metrics:
            return [s.model_copy(deep=True) for s in metrics.tempos]

    def meter_sections(self) -> list[MeterSection]:
        with self._reading() as metrics:
            return [s.model_copy(deep=True) for s in metrics.meters]

    def section(self, ref: SectionRef) -> MetricSection:
        """Fresh copy of a section.

        Raises:
            UnknownSectionError: If the section is not in this map.
        """
        with self._reading() as metrics:
            return metrics.get(self._handle(ref)).model_copy(deep=True)

    @property
    def n_tempos(self) -> int:
        with self._reading() as metrics:
            return len(metrics.tempos)

    @property
    def n_meters(self) -> int:
        with self._reading() as metrics:
            return len(metrics.meters)

    def first_tempo(self) -> TempoSection:
        with self._reading() as metrics:
            return metrics.first_tempo.model_copy(deep=True)

    def first_meter(self) -> MeterSection:
        with self._reading() as metrics:
            return metrics.first_meter.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Position search
    # ------------------------------------------------------------------

    def metric_at(
        self, sample: int, cursor: SectionCursor | None = None
    ) -> tuple[TempoMetric, SectionCursor]:
        """TempoMetric in effect at ``sample``.

        Pass the returned cursor back in to resume a forward scan. A cursor
        from before an edit is ignored and a fresh one is returned.
        """
        with self._reading() as metrics:
            return timeline.metric_at(metrics, max(sample, 0), cursor)

    def metric_at_bbt(self, bbt: BBTTime) -> TempoMetric:
        with self._reading() as metrics:
            return timeline.metric_at_bbt(metrics, bbt)

    def tempo_section_at(self, sample: int) -> TempoSection:
        with self._reading() as metrics:
            return metrics.tempo_at_sample(sample).model_copy(deep=True)

    def meter_section_at(self, sample: int) -> MeterSection:
        with self._reading() as metrics:
            return metrics.meter_at_sample(sample).model_copy(deep=True)

    def tempo_at(self, sample: int) -> Tempo:
        """Instantaneous tempo at ``sample``, following ramps."""
        with self._reading() as metrics:
            return timeline.tempo_at_sample(metrics, self._frame_rate, max(sample, 0))

    def meter_at(self, sample: int) -> Meter:
        with self._reading() as metrics:
            return metrics.meter_at_sample(sample).meter

    def samples_per_beat_at(self, sample: int) -> float:
        """Samples per beat of the (instantaneous) tempo at ``sample``."""
        return self.tempo_at(sample).samples_per_beat(self._frame_rate)

    # ------------------------------------------------------------------
    # Tempo-sensitive conversions
    # ------------------------------------------------------------------

    def beat_at_sample(self, sample: int) -> float:
        with self._reading() as metrics:
            return timeline.beat_at_sample(metrics, self._frame_rate, sample)

    def sample_at_beat(self, beat: float) -> int:
        with self._reading() as metrics:
            return timeline.sample_at_beat(metrics, self._frame_rate, beat)

    def tick_at_sample(self, sample: int) -> float:
        with self._reading() as metrics:
            return timeline.tick_at_sample(metrics, self._frame_rate, sample)

    def sample_at_tick(self, tick: float) -> int:
        with self._reading() as metrics:
            return timeline.sample_at_tick(metrics, self._frame_rate, tick)

    def samples_plus_beats(self, pos: int, beats: float) -> int:
        with self._reading() as metrics:
            return timeline.samples_plus_beats(metrics, self._frame_rate, pos, beats)

    def samples_minus_beats(self, pos: int, beats: float) -> int:
        with self._reading() as metrics:
            return timeline.samples_minus_beats(metrics, self._frame_rate, pos, beats)

    def samplewalk_to_beats(self, pos: int, distance: int) -> float:
        with self._reading() as metrics:
            return timeline.samplewalk_to_beats(metrics, self._frame_rate, pos, distance)

    # ------------------------------------------------------------------
    # Tempo- and meter-sensitive conversions
    # ------------------------------------------------------------------

    def bbt_at_sample(self, sample: int) -> BBTTime:
        with self._reading() as metrics:
            return timeline.bbt_at_sample(metrics, self._frame_rate, sample)

    def sample_at_bbt(self, bbt: BBTTime) -> int:
        with self._reading() as metrics:
            return timeline.sample_at_bbt(metrics, self._frame_rate, bbt)

    def bbt_at_beat(self, beat: float) -> BBTTime:
        with self._reading() as metrics:
            return timeline.bbt_at_beat(metrics, beat)

    def beat_at_bbt(self, bbt: BBTTime) -> float:
        with self._reading() as metrics:
            return timeline.beat_at_bbt(metrics, bbt)

    beats_to_bbt = bbt_at_beat
    bbt_to_beats = beat_at_bbt

    def samples_plus_bbt(self, pos: int, offset: BBTOffset) -> int:
        with self._reading() as metrics:
            return timeline.samples_plus_bbt(metrics, self._frame_rate, pos, offset)

    def samples_minus_bbt(self, pos: int, offset: BBTOffset) -> int:
        with self._reading() as metrics:
            return timeline.samples_minus_bbt(metrics, self._frame_rate, pos, offset)

    def bbt_duration_at(self, pos: int, offset: BBTOffset, direction: int = 1) -> int:
        """Length in samples of ``offset`` measured from ``pos``."""
        with self._reading() as metrics:
            return timeline.bbt_duration_at(metrics, self._frame_rate, pos, offset, direction)

    # ------------------------------------------------------------------
    # Rounding
    # ------------------------------------------------------------------

    def round_to_bar(self, sample: int, mode: RoundMode = RoundMode.NEAREST) -> int:
        with self._reading() as metrics:
            return timeline.round_to_grid(metrics, self._frame_rate, sample, mode, bars=True)

    def round_to_beat(self, sample: int, mode: RoundMode = RoundMode.NEAREST) -> int:
        with self._reading() as metrics:
            return timeline.round_to_grid(metrics, self._frame_rate, sample, mode)

    def round_to_beat_subdivision(
        self, sample: int, subdivisions: int | None = None, mode: RoundMode = RoundMode.NEAREST
    ) -> int:
        """Snap to 1/``subdivisions`` of a beat (the configured default when None)."""
        if subdivisions is None:
            subdivisions = self._subdivisions
        with self._reading() as metrics:
            return timeline.round_to_grid(
                metrics, self._frame_rate, sample, mode, subdivisions=subdivisions
            )

    # ------------------------------------------------------------------
    # Grid
    # ------------------------------------------------------------------

    def get_grid(self, start: int, end: int) -> list[grid.BBTPoint]:
        """Every bar and beat line in ``[start, end)``."""
        with self._reading() as metrics:
            return grid.get_grid(metrics, self._frame_rate, start, end)

    def tempo_curve(
        self, start: int, end: int, points: int | None = None
    ) -> tuple[np.ndarray, np.ndarray]:
        if points is None:
            points = self._curve_points
        with self._reading() as metrics:
            return grid.tempo_curve(metrics, self._frame_rate, start, end, points)

    # ------------------------------------------------------------------
    # Tempo mutations
    # ------------------------------------------------------------------

    def add_tempo(
        self,
        tempo: Tempo,
        position: float,
        tempo_type: TempoType = TempoType.CONSTANT,
        lock_style: PositionLockStyle = PositionLockStyle.MUSIC_TIME,
    ) -> TempoSection | None:
        """Add a tempo change.

        Args:
            tempo: New tempo.
            position: Beat (music-locked) or sample (audio-locked) position.
            tempo_type: CONSTANT, or RAMP towards the following section.
            lock_style: Which coordinate stays fixed through later edits.

        Returns:
            Copy of the new section, or None if the tempo or position was
            rejected. A movable tempo already at exactly this position has
            its value replaced instead.
        """

        def apply(metrics: Metrics) -> TempoSection:
            self._limits.check_tempo(tempo)
            if lock_style == PositionLockStyle.MUSIC_TIME:
                beat = self._check_beat(position)
                existing = next(
                    (t for t in metrics.tempos if t.movable and t.music_locked and t.beat == beat),
                    None,
                )
                sample = self._sample_at_beat(metrics, beat)
            else:
                sample = self._check_sample(position)  # type: ignore[arg-type]
                existing = next(
                    (
                        t
                        for t in metrics.tempos
                        if t.movable and not t.music_locked and t.sample == sample
                    ),
                    None,
                )
                beat = timeline.beat_at_sample(metrics, self._frame_rate, sample)

            if existing is not None:
                existing.tempo = tempo
                existing.tempo_type = tempo_type
                section_id = existing.id
            else:
                section_id = metrics.insert(
                    TempoSection(
                        tempo=tempo,
                        tempo_type=tempo_type,
                        lock_style=lock_style,
                        beat=beat,
                        sample=sample,
                    )
                )
            self._recompute(metrics)
            section = self._tempo_section(metrics, section_id)  # type: ignore[arg-type]
            return section.model_copy(deep=True)

        return self._edit("add_tempo", apply)

    def remove_tempo(self, section: SectionRef, send_signal: bool = True) -> bool:
        """Remove a tempo section. The initial tempo can not be removed."""

        def apply(metrics: Metrics) -> bool:
            target = self._tempo_section(metrics, section)
            if not target.movable:
                raise NotRemovableError("The initial tempo section can not be removed")
            metrics.remove(target.id)  # type: ignore[arg-type]
            self._recompute(metrics)
            return True

        return bool(self._edit("remove_tempo", apply, notify=send_signal))

    def replace_tempo(
        self,
        old: SectionRef,
        tempo: Tempo,
        position: float | None = None,
        tempo_type: TempoType | None = None,
    ) -> bool:
        """Atomically change a tempo section's value and position.

        The handle and lock style are preserved. ``position`` is a beat or a
        sample according to that lock style; None keeps the position. The
        initial tempo accepts only its own position (zero).
        """

        def apply(metrics: Metrics) -> bool:
            target = self._tempo_section(metrics, old)
            self._limits.check_tempo(tempo)
            if position is not None:
                if not target.movable:
                    if position != 0:
                        raise InvalidPositionError("The initial tempo section can not move")
                elif target.music_locked:
                    target.beat = self._check_beat(position)
                    target.sample = self._sample_at_beat(metrics, target.beat)
                else:
                    target.sample = self._check_sample(position)  # type: ignore[arg-type]
                    target.beat = timeline.beat_at_sample(
                        metrics, self._frame_rate, target.sample
                    )
            target.tempo = tempo
            if tempo_type is not None:
                target.tempo_type = tempo_type
            metrics.sort()
            self._recompute(metrics)
            return True

        return bool(self._edit("replace_tempo", apply))

    def move_tempo(
        self, section: SectionRef, sample: int, *, recompute_until: int | None = None
    ) -> bool:
        """Drag a tempo section to ``sample``.

        A music-locked section keeps its lock style and takes the beat found
        at ``sample`` before the move. ``recompute_until`` limits the pass to
        sections up to that sample, for cheap updates while dragging; call
        ``recompute()`` when the drag ends.
        """

        def apply(metrics: Metrics) -> bool:
            target = self._tempo_section(metrics, section)
            if not target.movable:
                raise InvalidPositionError("The initial tempo section can not move")
            new_sample = self._check_sample(sample)
            target.beat = timeline.beat_at_sample(metrics, self._frame_rate, new_sample)
            target.sample = new_sample
            metrics.sort()
            self._recompute(metrics, end=recompute_until)
            return True

        return bool(self._edit("move_tempo", apply))

    def change_initial_tempo(self, beats_per_minute: float, note_type: float = 4.0) -> bool:
        tempo = Tempo(beats_per_minute=beats_per_minute, note_type=note_type)

        def apply(metrics: Metrics) -> bool:
            self._limits.check_tempo(tempo)
            metrics.first_tempo.tempo = tempo
            self._recompute(metrics)
            return True

        return bool(self._edit("change_initial_tempo", apply))

    def change_existing_tempo_at(
        self, sample: int, beats_per_minute: float, note_type: float = 4.0
    ) -> bool:
        """Change the value of the tempo section in effect at ``sample``."""
        tempo = Tempo(beats_per_minute=beats_per_minute, note_type=note_type)

        def apply(metrics: Metrics) -> bool:
            self._limits.check_tempo(tempo)
            metrics.tempo_at_sample(max(sample, 0)).tempo = tempo
            self._recompute(metrics)
            return True

        return bool(self._edit("change_existing_tempo_at", apply))

    # ------------------------------------------------------------------
    # Meter mutations
    # ------------------------------------------------------------------

    def add_meter(
        self,
        meter: Meter,
        position: BBTTime | int,
        lock_style: PositionLockStyle = PositionLockStyle.MUSIC_TIME,
    ) -> MeterSection | None:
        """Add a meter change.

        Args:
            meter: New meter.
            position: Bar (music-locked; a position inside a bar moves to
                the next bar line) or sample (audio-locked; the meter starts
                the next bar and cuts the current one short).
            lock_style: Which coordinate stays fixed through later edits.

        Returns:
            Copy of the new section, or None if rejected. A movable meter
            already at the same bar (or sample) has its value replaced.
        """

        def apply(metrics: Metrics) -> MeterSection:
            self._limits.check_meter(meter)
            if lock_style == PositionLockStyle.MUSIC_TIME:
                bbt = self._check_bar(position)
                existing = next(
                    (
                        m
                        for m in metrics.meters
                        if m.movable and m.music_locked and m.bbt.bars == bbt.bars
                    ),
                    None,
                )
                beat = timeline.beat_at_bbt(metrics, bbt)
                sample = self._sample_at_beat(metrics, beat)
            else:
                if isinstance(position, BBTTime):
                    raise InvalidPositionError("Audio-locked meters need a sample position")
                sample = self._check_sample(position)
                existing = next(
                    (
                        m
                        for m in metrics.meters
                        if m.movable and not m.music_locked and m.sample == sample
                    ),
                    None,
                )
                beat = timeline.beat_at_sample(metrics, self._frame_rate, sample)
                bbt = timeline.bbt_at_beat(metrics, beat)

            if existing is not None:
                existing.meter = meter
                section_id = existing.id
            else:
                section_id = metrics.insert(
                    MeterSection(
                        meter=meter,
                        lock_style=lock_style,
                        beat=beat,
                        sample=sample,
                        bbt=BBTTime(bars=bbt.bars),
                    )
                )
            self._recompute(metrics, reassign_tempo_bbt=False)
            section = self._meter_section(metrics, section_id)  # type: ignore[arg-type]
            return section.model_copy(deep=True)

        return self._edit("add_meter", apply)

    def remove_meter(self, section: SectionRef, send_signal: bool = True) -> bool:
        """Remove a meter section. The initial meter can not be removed."""

        def apply(metrics: Metrics) -> bool:
            target = self._meter_section(metrics, section)
            if not target.movable:
                raise NotRemovableError("The initial meter section can not be removed")
            metrics.remove(target.id)  # type: ignore[arg-type]
            self._recompute(metrics, reassign_tempo_bbt=False)
            return True

        return bool(self._edit("remove_meter", apply, notify=send_signal))

    def replace_meter(
        self, old: SectionRef, meter: Meter, position: BBTTime | int | None = None
    ) -> bool:
        """Atomically change a meter section's value and position.

        The handle and lock style are preserved; None keeps the position.
        The initial meter accepts only its own position (bar 1 / sample 0).
        """

        def apply(metrics: Metrics) -> bool:
            target = self._meter_section(metrics, old)
            self._limits.check_meter(meter)
            if position is not None:
                if not target.movable:
                    if position not in (0, BBTTime()):
                        raise InvalidPositionError("The initial meter section can not move")
                elif target.music_locked:
                    target.bbt = self._check_bar(position)
                    target.beat = timeline.beat_at_bbt(metrics, target.bbt)
                else:
                    if isinstance(position, BBTTime):
                        raise InvalidPositionError("Audio-locked meters need a sample position")
                    target.sample = self._check_sample(position)
                    target.beat = timeline.beat_at_sample(
                        metrics, self._frame_rate, target.sample
                    )
            target.meter = meter
            metrics.sort_by_beat()
            self._recompute(metrics, reassign_tempo_bbt=False)
            return True

        return bool(self._edit("replace_meter", apply))

    # ------------------------------------------------------------------
    # Whole-map edits
    # ------------------------------------------------------------------

    def insert_time(self, where: int, amount: int) -> bool:
        """Open a gap of ``amount`` samples at ``where``.

        Every movable section at or after ``where`` moves later by
        ``amount`` samples; music-locked ones take the beat found there.
        """

        def apply(metrics: Metrics) -> bool:
            if where < 0 or amount <= 0:
                raise InvalidPositionError(f"Can not insert {amount} samples at {where}")
            moved = [s for s in metrics if s.movable and s.sample >= where]
            for s in moved:
                s.sample += amount
            self._relocate_by_sample(metrics, moved)
            return bool(moved)

        return bool(self._edit("insert_time", apply))

    def remove_time(self, where: int, amount: int) -> bool:
        """Cut ``amount`` samples starting at ``where``.

        Sections inside the cut are removed, later ones move earlier.

        Returns:
            True if any section was removed or moved.
        """

        def apply(metrics: Metrics) -> bool:
            if where < 0 or amount <= 0:
                raise InvalidPositionError(f"Can not remove {amount} samples at {where}")
            cut_end = where + amount
            doomed = [s.id for s in metrics if s.movable and where <= s.sample < cut_end]
            for section_id in doomed:
                metrics.remove(section_id)  # type: ignore[arg-type]
            moved = [s for s in metrics if s.movable and s.sample >= cut_end]
            for s in moved:
                s.sample -= amount
            if not doomed and not moved:
                return False
            self._relocate_by_sample(metrics, moved)
            return True

        return bool(self._edit("remove_time", apply))

    def _relocate_by_sample(self, metrics: Metrics, moved: list[MetricSection]) -> None:
        """Recompute with ``moved`` placed by sample, then restore their lock style."""
        flipped = [s for s in moved if s.music_locked]
        for s in flipped:
            s.lock_style = PositionLockStyle.AUDIO_TIME
        metrics.sort()
        self._recompute(metrics)
        for s in flipped:
            s.lock_style = PositionLockStyle.MUSIC_TIME
        self._recompute(metrics)

    def clear(self) -> bool:
        """Reset to the initial tempo and meter only."""
        return bool(self._edit("clear", self._reset))

    def _reset(self, metrics: Metrics) -> bool:
        for section in [s for s in metrics if s.movable]:
            metrics.remove(section.id)  # type: ignore[arg-type]
        metrics.first_tempo.tempo = self._default_tempo
        metrics.first_tempo.tempo_type = TempoType.CONSTANT
        metrics.first_meter.meter = self._default_meter
        self._recompute(metrics)
        return True

    def recompute(self, end: int | None = None) -> bool:
        """Force a full (or bounded) recompute pass."""

        def apply(metrics: Metrics) -> bool:
            self._recompute(metrics, end=end)
            return True

        return bool(self._edit("recompute", apply))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_state(self) -> TempoMapState:
        with self._reading() as metrics:
            return state_from_metrics(metrics, self._frame_rate)

    def set_state(self, state: TempoMapState | dict[str, Any], version: int | None = None) -> bool:
        """Replace the whole map from a state document.

        Args:
            state: Parsed state or its raw dict form.
            version: Document version, overriding the one in ``state``.

        Returns:
            False (map unchanged) if the document is malformed or breaks an
            invariant.
        """
        try:
            parsed = (
                state if isinstance(state, TempoMapState) else TempoMapState.model_validate(state)
            )
            metrics, legacy = metrics_from_state(
                parsed, self._frame_rate, self._limits, version=version
            )
            self._recompute(metrics)
        except (ValidationError, TempoMapError) as e:
            logger.warning("Rejected tempo map state: %s", e)
            return False

        if legacy:
            logger.info("Converted legacy tempo map state")
        with self._lock.write():
            self._metrics = metrics
        self._notifier.emit()
        return True

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def dump(self, stream: TextIO | None = None) -> str:
        """Human-readable listing of every section."""
        out = io.StringIO()
        with self._reading() as metrics:
            out.write(f"Tempo map @ {self._frame_rate} Hz, {len(metrics)} sections\n")
            for section in metrics:
                out.write(f"  [{section.id}] {section}\n")
        text = out.getvalue()
        if stream is not None:
            stream.write(text)
        return text


def save_state(tempo_map: TempoMap, path: str | Path) -> None:
    """Write the map's state to a JSON or YAML file."""
    write_state_file(tempo_map.get_state(), path)
    logger.debug("Saved tempo map state to %s", path)


def load_state(tempo_map: TempoMap, path: str | Path) -> None:
    """Load a JSON or YAML state file into ``tempo_map``.

    Raises:
        StateLoadError: If the file can not be read or holds an invalid state;
            the map is left unchanged.
    """
    state = read_state_file(path)
    if not tempo_map.set_state(state):
        raise StateLoadError(f"Tempo map state in {path} was rejected")
    logger.debug("Loaded tempo map state from %s", path)


__all__ = [
    "DEFAULT_METER",
    "DEFAULT_TEMPO",
    "SectionRef",
    "TempoMap",
    "load_state",
    "save_state",
]
