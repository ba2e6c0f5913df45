"""Error taxonomy for the tracking core.

None of these escape the core as unhandled faults: decode failures degrade to
an empty path, transport failures are logged and retried on the next poll tick,
and unreliable fixes cause the update to be skipped.
"""

from __future__ import annotations


class TrackingError(Exception):
    """Base class for tracking errors."""


class DecodeError(TrackingError, ValueError):
    """Raised when an encoded path is malformed."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class TransportError(TrackingError):
    """Raised by a position source when a fetch or subscription fails."""


class UnreliableFixWarning(UserWarning):
    """A position fix too far from the route to be trusted for progress."""

    def __init__(self, distance_meters: float, guard_meters: float) -> None:
        super().__init__(
            f"Nearest route point is {distance_meters:.0f} m away (guard {guard_meters:.0f} m)"
        )
        self.distance_meters = distance_meters
        self.guard_meters = guard_meters
