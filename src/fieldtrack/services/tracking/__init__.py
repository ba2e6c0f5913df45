"""Live tracking of a dispatched provider against its route."""

from .deviation import DeviationConfig, DeviationDetector
from .errors import DecodeError, TransportError, UnreliableFixWarning
from .path_decoder import PathDecoder, decode_polyline
from .position_feed import PositionCell, PositionFeed, PositionSource
from .progress import ProgressConfig, ProgressTracker, compute_progress
from .session import TrackingRegistry, TrackingSession

__all__ = [
    "DecodeError",
    "DeviationConfig",
    "DeviationDetector",
    "PathDecoder",
    "PositionCell",
    "PositionFeed",
    "PositionSource",
    "ProgressConfig",
    "ProgressTracker",
    "TrackingRegistry",
    "TrackingSession",
    "TransportError",
    "UnreliableFixWarning",
    "compute_progress",
    "decode_polyline",
]
