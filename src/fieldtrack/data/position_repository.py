"""Provider positions read from Supabase, by polling and through Realtime."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx
from postgrest import APIError
from supabase import AsyncClient

from ..config import settings
from ..db.supabase import create_supabase_client
from ..models.domain import Coordinate, PositionRecord
from ..services.tracking.errors import TransportError
from ..services.tracking.position_feed import PositionCallback, Unsubscribe

logger = logging.getLogger(__name__)

POSITION_COLUMNS = "current_lat, current_lng, current_address, updated_at"


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def record_from_row(row: Mapping[str, Any] | None, default_address: str | None = None) -> PositionRecord | None:
    """Build a position record from a ``provider_data`` row.

    Rows without a usable position (missing or zero coordinates, values out of
    range, no timestamp) yield None and are treated as "no position".
    """
    if not row:
        return None
    lat = row.get("current_lat")
    lng = row.get("current_lng")
    if not lat or not lng:
        return None
    try:
        coordinate = Coordinate(float(lat), float(lng))
    except (TypeError, ValueError):
        return None
    if not coordinate.is_valid():
        return None

    observed_at = _parse_timestamp(row.get("updated_at"))
    if observed_at is None:
        return None

    return PositionRecord(
        coordinate=coordinate,
        observed_at=observed_at,
        address=row.get("current_address") or default_address,
    )


def _row_from_payload(payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
    data = payload.get("data")
    if isinstance(data, Mapping) and isinstance(data.get("record"), Mapping):
        return data["record"]
    for key in ("record", "new"):
        if isinstance(payload.get(key), Mapping):
            return payload[key]
    return None


class SupabasePositionSource:
    """Position source backed by the provider positions table."""

    def __init__(
        self,
        client: AsyncClient,
        table: str | None = None,
        default_address: str | None = None,
    ) -> None:
        self._client = client
        self.table = table or settings.position_table
        self.default_address = default_address if default_address is not None else settings.default_address

    async def fetch_latest(self, entity_id: str) -> PositionRecord | None:
        try:
            response = await (
                self._client.table(self.table)
                .select(POSITION_COLUMNS)
                .eq("user_id", entity_id)
                .maybe_single()
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise TransportError(f"Failed to fetch position for {entity_id}: {exc}") from exc

        if response is None or not response.data:
            return None
        return record_from_row(response.data, self.default_address)

    async def subscribe(self, entity_id: str, callback: PositionCallback) -> Unsubscribe:
        """Listen for row updates of ``entity_id`` and forward them as records."""
        channel = self._client.channel(f"provider-location-{entity_id}")

        def handle_change(payload: Mapping[str, Any]) -> None:
            record = record_from_row(_row_from_payload(payload), self.default_address)
            if record is None:
                return
            logger.debug(
                f"Realtime update for {entity_id}: {record.coordinate.lat}, {record.coordinate.lng} "
                f"at {record.observed_at.isoformat()}"
            )
            callback(record)

        def handle_status(status: Any, error: Exception | None = None) -> None:
            logger.debug(f"Realtime subscription for {entity_id}: {status} {error or ''}".rstrip())

        channel.on_postgres_changes(
            "UPDATE",
            schema="public",
            table=self.table,
            filter=f"user_id=eq.{entity_id}",
            callback=handle_change,
        )
        try:
            await channel.subscribe(handle_status)
        except Exception as exc:
            raise TransportError(f"Realtime subscription failed for {entity_id}: {exc}") from exc

        async def unsubscribe() -> None:
            await self._client.remove_channel(channel)

        return unsubscribe


async def build_position_source() -> SupabasePositionSource | None:
    client = await create_supabase_client()
    if client is None:
        return None
    return SupabasePositionSource(client)
