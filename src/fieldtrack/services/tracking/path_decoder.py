"""Decoding of encoded route polylines with a per-entity cache."""

from __future__ import annotations

import logging

from ...models.domain import Coordinate, DecodedPath
from .errors import DecodeError

logger = logging.getLogger(__name__)

PRECISION = 1e5
# Deltas fit in 32 bits, so a well-formed value never needs more than 7 chunks.
MAX_CHUNK_SHIFT = 35

EMPTY_PATH: DecodedPath = ()


def _read_value(encoded: str, index: int) -> tuple[int, int]:
    """Read one zig-zag varint starting at ``index``; return ``(value, next_index)``."""

    length = len(encoded)
    shift = 0
    result = 0
    while True:
        if index >= length:
            raise DecodeError("Encoded path truncated in the middle of a value", index)
        b = ord(encoded[index]) - 63
        if b < 0 or b > 0x3F:
            raise DecodeError(f"Invalid character {encoded[index]!r} in encoded path", index)
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break
        if shift >= MAX_CHUNK_SHIFT:
            raise DecodeError("Encoded value is too long", index)
    value = ~(result >> 1) if (result & 1) else (result >> 1)
    return value, index


def decode_polyline(encoded: str) -> DecodedPath:
    """Decode a Google polyline string to a tuple of coordinates.

    OSRM and Google directions use this format for route geometry: each point is
    a pair of zig-zag encoded deltas (latitude first) at 1e-5 degree precision.

    Raises:
        DecodeError: if the string is truncated, holds characters outside the
            encoding alphabet, or decodes to coordinates outside valid ranges.
    """
    coordinates: list[Coordinate] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        point_start = index
        d_lat, index = _read_value(encoded, index)
        if index >= len(encoded):
            raise DecodeError("Encoded path ends after a latitude without its longitude", point_start)
        d_lng, index = _read_value(encoded, index)
        lat += d_lat
        lng += d_lng

        coordinate = Coordinate(lat / PRECISION, lng / PRECISION)
        if not coordinate.is_valid():
            raise DecodeError(
                f"Decoded coordinate ({coordinate.lat}, {coordinate.lng}) is out of range", point_start
            )
        coordinates.append(coordinate)

    return tuple(coordinates)


class PathDecoder:
    """Total, cached wrapper around :func:`decode_polyline`.

    One instance belongs to one tracked entity. Malformed encodings decode to an
    empty path; the failure is logged and kept in ``last_error`` so callers can
    tell "no route" apart from "broken route" when they need to.
    """

    def __init__(self) -> None:
        self._cache: dict[str, DecodedPath] = {}
        self._errors: dict[str, DecodeError] = {}
        self.last_error: DecodeError | None = None

    def decode(self, encoding: str | None) -> DecodedPath:
        if not encoding:
            self.last_error = None
            return EMPTY_PATH

        cached = self._cache.get(encoding)
        if cached is not None:
            self.last_error = self._errors.get(encoding)
            return cached

        try:
            path = decode_polyline(encoding)
            self.last_error = None
        except DecodeError as exc:
            logger.warning(f"Failed to decode route polyline ({len(encoding)} chars): {exc}")
            self.last_error = exc
            self._errors[encoding] = exc
            path = EMPTY_PATH

        self._cache[encoding] = path
        return path

    def invalidate(self, encoding: str | None = None) -> None:
        """Drop one cached encoding, or the whole cache when none is given."""
        if encoding is None:
            self._cache.clear()
            self._errors.clear()
        else:
            self._cache.pop(encoding, None)
            self._errors.pop(encoding, None)

    def is_cached(self, encoding: str) -> bool:
        return encoding in self._cache
