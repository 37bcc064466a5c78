"""Tempo map - musical time on a sample timeline."""

from metrum.core.tempo.enums import PositionLockStyle, RoundMode, TempoType
from metrum.core.tempo.errors import (
    InvalidPositionError,
    InvalidTempoError,
    NotRemovableError,
    StateLoadError,
    TempoMapError,
    UnknownSectionError,
)
from metrum.core.tempo.grid import BBTPoint
from metrum.core.tempo.map import TempoMap, load_state, save_state
from metrum.core.tempo.models import (
    MAX_SAMPLE,
    MIN_BPM,
    MIN_DIVISIONS_PER_BAR,
    TICKS_PER_BEAT,
    BBTOffset,
    BBTTime,
    Meter,
    Tempo,
    TempoLimits,
    TempoMetric,
)
from metrum.core.tempo.sections import MeterSection, MetricSection, TempoSection
from metrum.core.tempo.state import STATE_VERSION, TempoMapState

__all__ = [
    # Map
    "TempoMap",
    "load_state",
    "save_state",
    "TempoMapState",
    "STATE_VERSION",
    # Values
    "BBTOffset",
    "BBTTime",
    "Meter",
    "Tempo",
    "TempoLimits",
    "TempoMetric",
    "BBTPoint",
    "MAX_SAMPLE",
    "MIN_BPM",
    "MIN_DIVISIONS_PER_BAR",
    "TICKS_PER_BEAT",
    # Sections
    "MeterSection",
    "MetricSection",
    "TempoSection",
    # Enums
    "PositionLockStyle",
    "RoundMode",
    "TempoType",
    # Errors
    "InvalidPositionError",
    "InvalidTempoError",
    "NotRemovableError",
    "StateLoadError",
    "TempoMapError",
    "UnknownSectionError",
]
