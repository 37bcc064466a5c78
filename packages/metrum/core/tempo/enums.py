"""Tempo map enums - lock styles, tempo types and rounding modes."""

from enum import Enum


class PositionLockStyle(str, Enum):
    """Which coordinate of a metric section is authoritative.

    Attributes:
        MUSIC_TIME: Beat position is authoritative; sample position follows
            earlier tempo changes.
        AUDIO_TIME: Sample position is authoritative; beat position follows.
    """

    MUSIC_TIME = "MUSIC_TIME"
    AUDIO_TIME = "AUDIO_TIME"


class TempoType(str, Enum):
    """Shape of the tempo between a tempo section and its successor.

    Attributes:
        RAMP: Tempo moves exponentially towards the next section's tempo.
        CONSTANT: Tempo holds until the next section.
    """

    RAMP = "RAMP"
    CONSTANT = "CONSTANT"


class RoundMode(str, Enum):
    """Direction used when snapping a position to the musical grid."""

    DOWN = "DOWN"
    UP = "UP"
    NEAREST = "NEAREST"
