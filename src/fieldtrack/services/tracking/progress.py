"""Remaining distance, time and progress along the active route."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from ...config import settings
from ...models.domain import (
    Coordinate,
    PositionRecord,
    RouteBaseline,
    RouteProgressState,
    RouteUpdate,
)
from ..geospatial import nearest_vertex, remaining_length_m
from .errors import UnreliableFixWarning
from .path_decoder import PathDecoder

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[RouteProgressState], None]

# Initial distances closer than this are treated as the same route leg.
BASELINE_DISTANCE_TOLERANCE_M = 1.0


@dataclass(slots=True)
class ProgressConfig:
    reliability_guard_meters: float = settings.reliability_guard_meters
    distance_epsilon_meters: float = settings.publish_distance_epsilon_meters
    time_epsilon_seconds: float = settings.publish_time_epsilon_seconds


def compute_progress(baseline: RouteBaseline, remaining_distance_meters: float) -> RouteProgressState:
    """Derive progress and remaining time from the distance still to travel.

    Time is scaled from the baseline duration in proportion to distance rather
    than derived from instantaneous speed.
    """
    initial_distance = baseline.initial_distance_meters
    initial_duration = baseline.initial_duration_seconds

    if initial_distance > 0:
        progress = (initial_distance - remaining_distance_meters) / initial_distance * 100
        progress = max(0.0, min(100.0, progress))
    else:
        progress = 0.0

    if initial_distance > 0 and initial_duration > 0:
        remaining_time = int(math.ceil(initial_duration * (remaining_distance_meters / initial_distance)))
    else:
        remaining_time = 0

    return RouteProgressState(
        remaining_distance_meters=remaining_distance_meters,
        remaining_time_seconds=remaining_time,
        progress_percent=progress,
    )


class ProgressTracker:
    """Tracks progress of one entity along its current route leg.

    ``computed`` always holds the latest value derived from a reliable fix;
    ``published`` only moves when the change is large enough to matter, which
    keeps displayed figures from flickering under GPS noise.
    """

    def __init__(
        self,
        decoder: PathDecoder,
        config: ProgressConfig | None = None,
        on_change: Optional[ProgressCallback] = None,
    ) -> None:
        self._decoder = decoder
        self.config = config or ProgressConfig()
        self._on_change = on_change
        self._encoded_path: str = ""
        self.baseline: RouteBaseline | None = None
        self.computed: RouteProgressState | None = None
        self.published: RouteProgressState | None = None
        self.nearest_index: int | None = None

    def set_route(self, route: RouteUpdate) -> None:
        """Adopt a newly computed route.

        A new phase replaces the baseline and resets the published state. Within
        the same phase a materially different positive distance is a new leg:
        the baseline is replaced but the published figures carry on.
        """
        self._encoded_path = route.encoded_path
        new_baseline = route.baseline()
        current = self.baseline

        if current is None or new_baseline.phase_tag != current.phase_tag:
            logger.info(
                f"Route phase '{new_baseline.phase_tag}': baseline "
                f"{new_baseline.initial_distance_meters:.0f} m / {new_baseline.initial_duration_seconds:.0f} s"
            )
            self.baseline = new_baseline
            self.nearest_index = None
            self.computed = RouteProgressState.from_baseline(new_baseline)
            self._publish(self.computed)
            return

        if new_baseline.initial_distance_meters > 0 and not math.isclose(
            new_baseline.initial_distance_meters,
            current.initial_distance_meters,
            abs_tol=BASELINE_DISTANCE_TOLERANCE_M,
        ):
            logger.info(
                f"New route leg in phase '{new_baseline.phase_tag}': baseline "
                f"{new_baseline.initial_distance_meters:.0f} m / {new_baseline.initial_duration_seconds:.0f} s"
            )
            self.baseline = new_baseline
            self.nearest_index = None

    def update(self, position: PositionRecord | Coordinate) -> RouteProgressState | None:
        """Evaluate a new fix and return the currently published state."""
        coordinate = position.coordinate if isinstance(position, PositionRecord) else position
        baseline = self.baseline
        if baseline is None or not coordinate.is_valid():
            return self.published

        path = self._decoder.decode(self._encoded_path)
        if len(path) < 2:
            return self.published

        nearest = nearest_vertex(coordinate, path)
        if nearest is None:
            return self.published
        index, distance_to_route = nearest

        if distance_to_route > self.config.reliability_guard_meters:
            warning = UnreliableFixWarning(distance_to_route, self.config.reliability_guard_meters)
            logger.debug(f"Skipping progress update: {warning}")
            return self.published

        self.nearest_index = index
        self.computed = compute_progress(baseline, remaining_length_m(path, index))

        if self._is_significant(self.computed):
            self._publish(self.computed)
        return self.published

    def _is_significant(self, state: RouteProgressState) -> bool:
        previous = self.published
        if previous is None:
            return True
        distance_diff = abs(previous.remaining_distance_meters - state.remaining_distance_meters)
        time_diff = abs(previous.remaining_time_seconds - state.remaining_time_seconds)
        return distance_diff > self.config.distance_epsilon_meters or time_diff > self.config.time_epsilon_seconds

    def _publish(self, state: RouteProgressState) -> None:
        self.published = state
        if self._on_change is not None:
            self._on_change(state)
