"""Persisted tempo map state.

``TempoMapState`` is the versioned document the undo wrapper and session
files exchange with the map. Version 2 stores both coordinates of every
section plus its lock style. Version 1 documents predate audio locking:
they position meters and tempos by BBT only, and are converted on load.

Sample positions are stored at the writer's frame rate. Loading into a map
running at another rate rescales the authoritative sample positions.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from metrum.core.tempo.enums import PositionLockStyle, TempoType
from metrum.core.tempo.errors import InvalidTempoError, StateLoadError
from metrum.core.tempo.metrics import Metrics
from metrum.core.tempo.models import MAX_SAMPLE, BBTTime, Meter, Tempo, TempoLimits
from metrum.core.tempo.sections import MeterSection, MetricSection, TempoSection
from metrum.core.tempo.timeline import bar_length, beat_at_bbt
from metrum.core.utils.json import read_json, write_json

logger = logging.getLogger(__name__)

STATE_VERSION = 2
LEGACY_STATE_VERSION = 1


class TempoSectionState(BaseModel):
    """Serialized tempo section."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["tempo"] = "tempo"
    beat: float = 0.0
    sample: int = 0
    movable: bool = True
    lock_style: PositionLockStyle = PositionLockStyle.MUSIC_TIME
    beats_per_minute: float
    note_type: float = 4.0
    tempo_type: TempoType = TempoType.CONSTANT
    bar_offset: float = -1.0
    bbt: BBTTime | None = None


class MeterSectionState(BaseModel):
    """Serialized meter section."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["meter"] = "meter"
    beat: float = 0.0
    sample: int = 0
    movable: bool = True
    lock_style: PositionLockStyle = PositionLockStyle.MUSIC_TIME
    divisions_per_bar: float
    note_type: float = 4.0
    bbt: BBTTime = Field(default_factory=BBTTime)


SectionState = Annotated[TempoSectionState | MeterSectionState, Field(discriminator="kind")]


class TempoMapState(BaseModel):
    """Complete, self-contained description of a tempo map.

    Attributes:
        version: Document version (1 = legacy BBT-positioned, 2 = current).
        frame_rate: Sample rate the sample positions were written at.
        sections: Every tempo and meter section in timeline order.
    """

    model_config = ConfigDict(extra="ignore")

    version: int = Field(default=STATE_VERSION, ge=LEGACY_STATE_VERSION, le=STATE_VERSION)
    frame_rate: int = Field(gt=0)
    sections: list[SectionState] = Field(default_factory=list)


# ============================================================================
# Metrics <-> state
# ============================================================================


def state_from_metrics(metrics: Metrics, frame_rate: int) -> TempoMapState:
    """Serialize a Metrics sequence."""
    sections: list[TempoSectionState | MeterSectionState] = []
    for section in metrics:
        if isinstance(section, TempoSection):
            sections.append(
                TempoSectionState(
                    beat=section.beat,
                    sample=section.sample,
                    movable=section.movable,
                    lock_style=section.lock_style,
                    beats_per_minute=section.tempo.beats_per_minute,
                    note_type=section.tempo.note_type,
                    tempo_type=section.tempo_type,
                    bar_offset=section.bar_offset,
                    bbt=section.bbt,
                )
            )
        else:
            sections.append(
                MeterSectionState(
                    beat=section.beat,
                    sample=section.sample,
                    movable=section.movable,
                    lock_style=section.lock_style,
                    divisions_per_bar=section.meter.divisions_per_bar,
                    note_type=section.meter.note_type,
                    bbt=section.bbt,
                )
            )
    return TempoMapState(version=STATE_VERSION, frame_rate=frame_rate, sections=sections)


def metrics_from_state(
    state: TempoMapState,
    frame_rate: int,
    limits: TempoLimits,
    *,
    version: int | None = None,
) -> tuple[Metrics, bool]:
    """Build an (unrecomputed) Metrics sequence from a state document.

    Args:
        state: Parsed document.
        frame_rate: Sample rate of the map being loaded into.
        limits: Floors every tempo and meter must respect.
        version: Overrides ``state.version`` when given.

    Returns:
        Tuple of ``(metrics, legacy)``; ``legacy`` is True when tempos were
        positioned by BBT and still need their beats derived.

    Raises:
        StateLoadError: If the document breaks a map invariant.
    """
    version = state.version if version is None else version
    if version not in (LEGACY_STATE_VERSION, STATE_VERSION):
        raise StateLoadError(f"Unsupported tempo map state version {version}")
    legacy = version == LEGACY_STATE_VERSION

    initial_tempos = [s for s in state.sections if s.kind == "tempo" and not s.movable]
    initial_meters = [s for s in state.sections if s.kind == "meter" and not s.movable]
    if len(initial_tempos) != 1 or len(initial_meters) != 1:
        raise StateLoadError(
            "State must contain exactly one initial tempo and one initial meter, "
            f"found {len(initial_tempos)} and {len(initial_meters)}"
        )

    scale = frame_rate / state.frame_rate
    if scale != 1.0:
        logger.info(
            "Rescaling tempo map state from %d Hz to %d Hz", state.frame_rate, frame_rate
        )

    metrics = Metrics()
    for entry in state.sections:
        try:
            section = _section_from_state(entry, limits, scale, legacy)
        except InvalidTempoError as e:
            raise StateLoadError(f"Invalid section in state: {e}") from e
        metrics.insert(section)

    if legacy:
        _place_legacy_sections(metrics)
    return metrics, legacy


def _section_from_state(
    entry: TempoSectionState | MeterSectionState,
    limits: TempoLimits,
    scale: float,
    legacy: bool,
) -> MetricSection:
    if not math.isfinite(entry.beat) or entry.beat < 0.0 or entry.sample < 0:
        raise StateLoadError(f"Negative or non-finite position in {entry.kind} section")
    if entry.sample > MAX_SAMPLE or entry.sample * scale > MAX_SAMPLE:
        raise StateLoadError(f"Position of {entry.kind} section is beyond sample {MAX_SAMPLE}")

    lock_style = PositionLockStyle.MUSIC_TIME if legacy else entry.lock_style
    sample = int(round(entry.sample * scale))
    beat = entry.beat
    if not entry.movable:
        beat, sample = 0.0, 0

    if isinstance(entry, TempoSectionState):
        tempo = Tempo(beats_per_minute=entry.beats_per_minute, note_type=entry.note_type)
        limits.check_tempo(tempo)
        if legacy and entry.movable and entry.bbt is None:
            raise StateLoadError("Legacy tempo section has no BBT position")
        return TempoSection(
            beat=beat,
            sample=sample,
            movable=entry.movable,
            lock_style=lock_style,
            tempo=tempo,
            tempo_type=entry.tempo_type,
            bar_offset=0.0 if not entry.movable else entry.bar_offset,
            bbt=entry.bbt or BBTTime(),
        )

    meter = Meter(divisions_per_bar=entry.divisions_per_bar, note_type=entry.note_type)
    limits.check_meter(meter)
    bbt = BBTTime() if not entry.movable else entry.bbt
    if entry.movable and lock_style == PositionLockStyle.MUSIC_TIME:
        if bbt.bars <= 1 or bbt.beats != 1 or bbt.ticks != 0:
            raise StateLoadError(f"Meter section at {bbt} does not start a bar after bar 1")
    return MeterSection(
        beat=beat,
        sample=sample,
        movable=entry.movable,
        lock_style=lock_style,
        meter=meter,
        bbt=bbt,
    )


def _place_legacy_sections(metrics: Metrics) -> None:
    """Derive beats of BBT-positioned legacy sections.

    Meters are placed bar by bar from the start, then every tempo is placed
    inside the bar its BBT names.
    """
    meters = sorted(metrics.meters, key=lambda m: m.bbt.bars)
    for prev, meter in zip(meters, meters[1:]):
        if meter.bbt.bars <= prev.bbt.bars:
            raise StateLoadError(f"Two meter sections start at bar {meter.bbt.bars}")
        meter.beat = prev.beat + (meter.bbt.bars - prev.bbt.bars) * bar_length(prev.meter)
    metrics.sort_by_beat()

    for tempo in metrics.tempos:
        if tempo.movable:
            tempo.beat = beat_at_bbt(metrics, tempo.bbt)
            tempo.bar_offset = -1.0
    metrics.sort_by_beat()


# ============================================================================
# Files
# ============================================================================


def _state_format(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    raise StateLoadError(f"Unsupported state file format: {suffix}")


def write_state_file(state: TempoMapState, path: str | Path) -> None:
    """Write ``state`` as JSON or YAML, chosen by the file extension."""
    path = Path(path)
    data = state.model_dump(mode="json")
    if _state_format(path) == "json":
        write_json(path, data)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)


def read_state_file(path: str | Path) -> TempoMapState:
    """Read and validate a state file.

    Raises:
        StateLoadError: If the file is missing, unreadable or not a valid state.
    """
    path = Path(path)
    if not path.exists():
        raise StateLoadError(f"State file does not exist: {path}")

    raw: Any
    try:
        if _state_format(path) == "json":
            raw = read_json(path)
        else:
            with path.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise StateLoadError(f"Could not read state file {path}: {e}") from e

    try:
        return TempoMapState.model_validate(raw)
    except ValidationError as e:
        raise StateLoadError(f"Invalid tempo map state in {path}: {e}") from e


__all__ = [
    "LEGACY_STATE_VERSION",
    "MeterSectionState",
    "STATE_VERSION",
    "SectionState",
    "TempoMapState",
    "TempoSectionState",
    "metrics_from_state",
    "read_state_file",
    "state_from_metrics",
    "write_state_file",
]
