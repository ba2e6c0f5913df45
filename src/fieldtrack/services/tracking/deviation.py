"""Route deviation detection with dwell-time hysteresis and a trigger cooldown."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ...config import settings
from ...models.domain import Coordinate, DeviationResult, DeviationState, PositionRecord
from ..geospatial import distance_to_path_m
from .path_decoder import PathDecoder

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(slots=True)
class DeviationConfig:
    max_deviation_meters: float = settings.max_deviation_meters
    min_dwell_ms: int = settings.min_dwell_ms
    cooldown_ms: int = settings.cooldown_ms


class DeviationDetector:
    """Decides when an entity has been off its route long enough to reroute.

    State moves ON_ROUTE -> OFF_ROUTE_PENDING when the fix is farther than
    ``max_deviation_meters`` from every route segment, and on to TRIGGERED once
    the condition has held for ``min_dwell_ms`` and ``cooldown_ms`` has passed
    since the previous trigger. Triggering calls ``on_recalculate`` once and
    drops the decoded geometry. Coming back within the threshold ends the
    episode; supplying a new route resets to ON_ROUTE.
    """

    def __init__(
        self,
        decoder: PathDecoder,
        config: DeviationConfig | None = None,
        on_recalculate: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self._decoder = decoder
        self.config = config or DeviationConfig()
        self._on_recalculate = on_recalculate
        self._clock = clock
        self._encoded_path: str = ""
        self.state = DeviationState.ON_ROUTE
        self.pending_since: float | None = None
        self.last_triggered_at: float | None = None
        self.last_result = DeviationResult(is_off_route=False, distance_from_route=0.0, state=self.state)

    def set_route(self, encoded_path: str) -> None:
        self._encoded_path = encoded_path
        self.clear_route_cache()

    def clear_route_cache(self) -> None:
        """Forget decoded geometry and any episode in progress."""
        self._decoder.invalidate()
        self.pending_since = None
        self.state = DeviationState.ON_ROUTE
        self.last_result = DeviationResult(is_off_route=False, distance_from_route=0.0, state=self.state)

    def check(self, position: PositionRecord | Coordinate, now_ms: float | None = None) -> DeviationResult:
        coordinate = position.coordinate if isinstance(position, PositionRecord) else position

        if not coordinate.is_valid():
            # An unusable fix is absent: the episode in progress carries on untouched.
            return self.last_result

        now = self._clock() if now_ms is None else now_ms
        path = self._decoder.decode(self._encoded_path)
        threshold = self.config.max_deviation_meters
        min_distance = distance_to_path_m(coordinate, path, early_exit_below=threshold * 0.5)

        if min_distance is None:
            # No usable geometry: never fire, and do not let a pending episode age meanwhile.
            if self.state is DeviationState.OFF_ROUTE_PENDING:
                self.state = DeviationState.ON_ROUTE
                self.pending_since = None
            self.last_result = DeviationResult(is_off_route=False, distance_from_route=0.0, state=self.state)
            return self.last_result

        is_off_route = min_distance > threshold
        if is_off_route:
            if self.state is DeviationState.ON_ROUTE:
                self.pending_since = now
                self.state = DeviationState.OFF_ROUTE_PENDING
                logger.info(f"Entity went off route, distance: {min_distance:.0f} m")
            if self.state is DeviationState.OFF_ROUTE_PENDING and self._may_trigger(now):
                self._trigger(now)
        elif self.state is not DeviationState.ON_ROUTE:
            logger.info("Entity back on route")
            self.state = DeviationState.ON_ROUTE
            self.pending_since = None

        self.last_result = DeviationResult(is_off_route=is_off_route, distance_from_route=min_distance, state=self.state)
        return self.last_result

    def _may_trigger(self, now: float) -> bool:
        if self.pending_since is None or now - self.pending_since < self.config.min_dwell_ms:
            return False
        return self.last_triggered_at is None or now - self.last_triggered_at >= self.config.cooldown_ms

    def _trigger(self, now: float) -> None:
        logger.info("Triggering route recalculation")
        self.state = DeviationState.TRIGGERED
        self.last_triggered_at = now
        self._decoder.invalidate()
        if self._on_recalculate is not None:
            self._on_recalculate()
