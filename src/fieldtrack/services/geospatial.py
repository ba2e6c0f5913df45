"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from ..models.domain import Coordinate

EARTH_RADIUS_M = 6371000.0

# Segments shorter than this collapse to their start point.
MIN_SEGMENT_LENGTH_M = 1.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_m(start: Coordinate, end: Coordinate) -> float:
    return haversine_m(start.lat, start.lng, end.lat, end.lng)


def _planar_m(d_lat: float, d_lng: float, ref_lat: float) -> float:
    # Small-angle projection: longitude delta scaled by cos of the reference latitude (all radians).
    return math.hypot(d_lat * EARTH_RADIUS_M, d_lng * EARTH_RADIUS_M * math.cos(ref_lat))


def point_to_segment_m(point: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> float:
    """Approximate distance in meters from ``point`` to the segment ``seg_start``-``seg_end``.

    Uses a planar small-angle projection around the segment's latitude rather than
    an exact cross-track computation. Route deviation thresholds were tuned
    against this approximation, so it has to stay as it is.
    """

    lat1, lng1 = math.radians(seg_start.lat), math.radians(seg_start.lng)
    lat2, lng2 = math.radians(seg_end.lat), math.radians(seg_end.lng)
    lat3, lng3 = math.radians(point.lat), math.radians(point.lng)

    d13 = _planar_m(lat3 - lat1, lng3 - lng1, lat1)
    d12 = _planar_m(lat2 - lat1, lng2 - lng1, lat1)
    d23 = _planar_m(lat3 - lat2, lng3 - lng2, lat2)

    if d12 < MIN_SEGMENT_LENGTH_M:
        return d13

    # Projection parameter is computed on raw angular deltas.
    dot = (lat3 - lat1) * (lat2 - lat1) + (lng3 - lng1) * (lng2 - lng1)
    len_sq = (lat2 - lat1) ** 2 + (lng2 - lng1) ** 2
    param = dot / len_sq if len_sq > 0 else -1.0

    if param < 0:
        return d13
    if param > 1:
        return d23

    closest_lat = lat1 + param * (lat2 - lat1)
    closest_lng = lng1 + param * (lng2 - lng1)
    return _planar_m(lat3 - closest_lat, lng3 - closest_lng, closest_lat)


def distance_to_path_m(
    point: Coordinate,
    path: Sequence[Coordinate],
    early_exit_below: float | None = None,
) -> float | None:
    """Minimum approximate distance from ``point`` to any segment of ``path``.

    Returns None when the path has fewer than two points or the point is invalid.
    Scanning stops as soon as a segment closer than ``early_exit_below`` is found.
    """

    if len(path) < 2 or not point.is_valid():
        return None

    min_distance = math.inf
    for start, end in zip(path, path[1:]):
        segment_distance = point_to_segment_m(point, start, end)
        if segment_distance < min_distance:
            min_distance = segment_distance
        if early_exit_below is not None and min_distance < early_exit_below:
            break
    return min_distance


def nearest_vertex(point: Coordinate, path: Sequence[Coordinate]) -> tuple[int, float] | None:
    """Return ``(index, distance_m)`` of the path vertex closest to ``point``."""

    if not path or not point.is_valid():
        return None

    closest_index = 0
    closest_distance = math.inf
    for index, vertex in enumerate(path):
        dist = distance_m(point, vertex)
        if dist < closest_distance:
            closest_distance = dist
            closest_index = index
    return closest_index, closest_distance


def remaining_length_m(path: Sequence[Coordinate], start_index: int) -> float:
    """Sum of segment lengths from ``start_index`` to the end of the path."""

    total = 0.0
    for index in range(max(0, start_index), len(path) - 1):
        total += distance_m(path[index], path[index + 1])
    return total
