"""Display formatting and serialization of tracking state."""

from __future__ import annotations

import math

from ...models.domain import PositionRecord, RouteProgressState
from ...schemas.tracking import PositionModel, ProgressModel


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{math.floor(meters + 0.5)} m"
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    minutes = math.ceil(seconds / 60)
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}min"


def progress_to_model(state: RouteProgressState) -> ProgressModel:
    return ProgressModel(
        remaining_distance_meters=state.remaining_distance_meters,
        remaining_distance_text=format_distance(state.remaining_distance_meters),
        remaining_time_seconds=state.remaining_time_seconds,
        remaining_time_text=format_duration(state.remaining_time_seconds),
        progress_percent=state.progress_percent,
    )


def position_to_model(record: PositionRecord) -> PositionModel:
    return PositionModel(
        lat=record.coordinate.lat,
        lng=record.coordinate.lng,
        address=record.address,
        observed_at=record.observed_at,
    )
