"""Tempo map error taxonomy.

Mutations raise these internally; the public ``TempoMap`` surface turns
them into ``False``/``None`` returns after logging, so none of them are
fatal to the map.
"""

from __future__ import annotations


class TempoMapError(Exception):
    """Base exception for tempo map failures."""


class InvalidPositionError(TempoMapError):
    """Mutation targets the start-of-timeline marker or an unrepresentable position."""


class InvalidTempoError(TempoMapError):
    """Tempo or meter value the ramp arithmetic cannot work with (e.g. bpm <= 0)."""


class NotRemovableError(TempoMapError):
    """Removal requested on a non-movable section."""


class UnknownSectionError(TempoMapError, KeyError):
    """Section handle does not belong to this map (or was already removed)."""


class StateLoadError(TempoMapError):
    """Persisted state could not be read or is malformed."""


__all__ = [
    "InvalidPositionError",
    "InvalidTempoError",
    "NotRemovableError",
    "StateLoadError",
    "TempoMapError",
    "UnknownSectionError",
]
