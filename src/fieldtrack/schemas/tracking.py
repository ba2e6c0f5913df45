"""Tracking request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.domain import DeviationState, RouteUpdate


class RouteUpdateModel(BaseModel):
    """A route computed by the route provider for the current job phase."""

    encoded_path: str = Field(..., description="Encoded polyline of the route geometry.")
    initial_distance_meters: float = Field(..., ge=0)
    initial_duration_seconds: float = Field(..., ge=0)
    phase_tag: str = Field(..., description="Navigation phase the route belongs to (e.g. 'going_to_client').")

    def to_domain(self) -> RouteUpdate:
        return RouteUpdate(
            encoded_path=self.encoded_path,
            initial_distance_meters=self.initial_distance_meters,
            initial_duration_seconds=self.initial_duration_seconds,
            phase_tag=self.phase_tag,
        )


class AttachRequest(BaseModel):
    route: Optional[RouteUpdateModel] = None


class PositionModel(BaseModel):
    lat: float
    lng: float
    address: Optional[str] = None
    observed_at: datetime


class ProgressModel(BaseModel):
    remaining_distance_meters: float
    remaining_distance_text: str
    remaining_time_seconds: int
    remaining_time_text: str
    progress_percent: float = Field(..., ge=0, le=100)


class DeviationModel(BaseModel):
    state: DeviationState
    is_off_route: bool = False
    distance_from_route: Optional[float] = None


class TrackingSnapshot(BaseModel):
    entity_id: str
    attached: bool
    push_connected: bool
    phase_tag: Optional[str] = None
    route_available: bool = False
    route_error: Optional[str] = None
    nearest_vertex_index: Optional[int] = None
    position: Optional[PositionModel] = None
    progress: Optional[ProgressModel] = None
    deviation: DeviationModel
    recalculation_requested: bool = False
