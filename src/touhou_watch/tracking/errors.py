from __future__ import annotations


class TrackingError(RuntimeError):
    """Base class for run tracking failures."""


class SequencingError(TrackingError):
    """Raised when an event history cannot be segmented."""


class StateError(TrackingError):
    """Raised when an event does not fit the current run state."""
