"""Domain models for tracked positions, routes and progress."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 latitude/longitude pair in degrees."""

    lat: float
    lng: float

    def is_valid(self) -> bool:
        """Return True when both components are finite and inside their ranges.

        Invalid coordinates are treated as absent and must never reach distance math.
        """
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            return False
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lng <= 180.0


DecodedPath = tuple[Coordinate, ...]


@dataclass(frozen=True, slots=True)
class PositionRecord:
    """A single observation of a tracked entity's position."""

    coordinate: Coordinate
    observed_at: datetime
    address: Optional[str] = None

    def __post_init__(self) -> None:
        # Naive timestamps are UTC; aware and naive values never compare.
        if self.observed_at.tzinfo is None:
            object.__setattr__(self, "observed_at", self.observed_at.replace(tzinfo=timezone.utc))


@dataclass(frozen=True, slots=True)
class RouteBaseline:
    initial_distance_meters: float
    initial_duration_seconds: float
    phase_tag: str


@dataclass(frozen=True, slots=True)
class RouteProgressState:
    remaining_distance_meters: float
    remaining_time_seconds: int
    progress_percent: float

    @classmethod
    def from_baseline(cls, baseline: RouteBaseline) -> "RouteProgressState":
        return cls(
            remaining_distance_meters=baseline.initial_distance_meters,
            remaining_time_seconds=int(math.ceil(baseline.initial_duration_seconds)),
            progress_percent=0.0,
        )


@dataclass(frozen=True, slots=True)
class RouteUpdate:
    """A freshly computed route as supplied by the route provider."""

    encoded_path: str
    initial_distance_meters: float
    initial_duration_seconds: float
    phase_tag: str

    def baseline(self) -> RouteBaseline:
        return RouteBaseline(
            initial_distance_meters=self.initial_distance_meters,
            initial_duration_seconds=self.initial_duration_seconds,
            phase_tag=self.phase_tag,
        )


class DeviationState(str, Enum):
    ON_ROUTE = "on_route"
    OFF_ROUTE_PENDING = "off_route_pending"
    TRIGGERED = "triggered"


@dataclass(frozen=True, slots=True)
class DeviationResult:
    is_off_route: bool
    distance_from_route: float
    state: DeviationState
