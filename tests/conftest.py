from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from src.fieldtrack.models.domain import Coordinate, PositionRecord

BASE_TIME = datetime(2025, 12, 17, 12, 0, tzinfo=timezone.utc)


def encode_polyline(points: Sequence[tuple[float, float]]) -> str:
    chunks: list[str] = []
    prev_lat = prev_lng = 0
    for lat, lng in points:
        int_lat, int_lng = round(lat * 1e5), round(lng * 1e5)
        for delta in (int_lat - prev_lat, int_lng - prev_lng):
            value = ~(delta << 1) if delta < 0 else delta << 1
            while value >= 0x20:
                chunks.append(chr((0x20 | (value & 0x1F)) + 63))
                value >>= 5
            chunks.append(chr(value + 63))
        prev_lat, prev_lng = int_lat, int_lng
    return "".join(chunks)


def make_record(lat: float, lng: float, seconds: float = 0.0, address: str | None = None) -> PositionRecord:
    return PositionRecord(
        coordinate=Coordinate(lat, lng),
        observed_at=BASE_TIME + timedelta(seconds=seconds),
        address=address,
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def encode():
    return encode_polyline


@pytest.fixture
def straight_points() -> list[tuple[float, float]]:
    """(0, 0) -> (0, 0.01) along the equator, one vertex every 0.0005 degrees (~55.6 m)."""
    return [(0.0, round(i * 0.0005, 5)) for i in range(21)]


@pytest.fixture
def straight_route(straight_points) -> str:
    return encode_polyline(straight_points)


@pytest.fixture
def single_segment_route() -> str:
    return encode_polyline([(0.0, 0.0), (0.0, 0.01)])
