"""Per-entity composition of the tracking components and the session registry."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ...models.domain import DeviationResult, PositionRecord, RouteUpdate
from ...schemas.tracking import DeviationModel, TrackingSnapshot
from ..outputs.formatter import position_to_model, progress_to_model
from .deviation import DeviationConfig, DeviationDetector
from .path_decoder import PathDecoder
from .position_feed import PositionFeed, PositionSource
from .progress import ProgressConfig, ProgressTracker

logger = logging.getLogger(__name__)


class TrackingSession:
    """Everything needed to follow one active job.

    Owns its own decoder cache, position feed, progress tracker and deviation
    detector; nothing is shared with other sessions. Every accepted position is
    handed to both consumers in acceptance order.
    """

    def __init__(
        self,
        entity_id: str,
        source: PositionSource,
        *,
        poll_interval_ms: int | None = None,
        progress_config: ProgressConfig | None = None,
        deviation_config: DeviationConfig | None = None,
        on_recalculate: Optional[Callable[[str], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.entity_id = entity_id
        self._on_recalculate = on_recalculate
        self.decoder = PathDecoder()
        self.feed = PositionFeed(entity_id, source, poll_interval_ms=poll_interval_ms)
        self.progress = ProgressTracker(self.decoder, progress_config)
        detector_kwargs = {"clock": clock} if clock is not None else {}
        self.deviation = DeviationDetector(
            self.decoder,
            deviation_config,
            on_recalculate=self._handle_recalculate,
            **detector_kwargs,
        )
        self.route: RouteUpdate | None = None
        self.recalculation_requested = False
        self.last_deviation: DeviationResult | None = None
        self.feed.subscribe(self._on_position)

    async def start(self) -> None:
        await self.feed.attach()

    async def stop(self) -> None:
        await self.feed.detach()

    async def __aenter__(self) -> "TrackingSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def apply_route(self, route: RouteUpdate) -> None:
        """Adopt a route from the route provider as the new baseline."""
        self.route = route
        self.deviation.set_route(route.encoded_path)
        self.progress.set_route(route)
        self.recalculation_requested = False
        self.last_deviation = None
        logger.info(f"Route applied for {self.entity_id} (phase '{route.phase_tag}')")

        latest = self.feed.latest()
        if latest is not None:
            self._evaluate(latest)

    def _on_position(self, record: PositionRecord) -> None:
        self._evaluate(record)

    def _evaluate(self, record: PositionRecord) -> None:
        if self.route is None:
            return
        self.progress.update(record)
        self.last_deviation = self.deviation.check(record)

    def _handle_recalculate(self) -> None:
        self.recalculation_requested = True
        if self._on_recalculate is not None:
            self._on_recalculate(self.entity_id)

    def snapshot(self) -> TrackingSnapshot:
        latest = self.feed.latest()
        published = self.progress.published
        deviation = self.last_deviation
        route_available = False
        route_error = None
        if self.route is not None:
            route_available = len(self.decoder.decode(self.route.encoded_path)) >= 2
            if self.decoder.last_error is not None:
                route_error = str(self.decoder.last_error)
        return TrackingSnapshot(
            entity_id=self.entity_id,
            attached=self.feed.attached,
            push_connected=self.feed.push_connected,
            phase_tag=self.route.phase_tag if self.route else None,
            route_available=route_available,
            route_error=route_error,
            nearest_vertex_index=self.progress.nearest_index,
            position=position_to_model(latest) if latest else None,
            progress=progress_to_model(published) if published else None,
            deviation=DeviationModel(
                state=self.deviation.state,
                is_off_route=deviation.is_off_route if deviation else False,
                distance_from_route=deviation.distance_from_route if deviation else None,
            ),
            recalculation_requested=self.recalculation_requested,
        )


class TrackingRegistry:
    """Maps entity ids to their live :class:`TrackingSession`."""

    def __init__(
        self,
        source: PositionSource,
        *,
        poll_interval_ms: int | None = None,
        on_recalculate: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._source = source
        self._poll_interval_ms = poll_interval_ms
        self._on_recalculate = on_recalculate
        self._sessions: dict[str, TrackingSession] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, entity_id: str) -> TrackingSession:
        try:
            return self._sessions[entity_id]
        except KeyError:
            raise KeyError(f"Entity '{entity_id}' is not being tracked") from None

    async def attach(self, entity_id: str, route: RouteUpdate | None = None) -> TrackingSession:
        async with self._lock:
            session = self._sessions.get(entity_id)
            if session is None:
                session = TrackingSession(
                    entity_id,
                    self._source,
                    poll_interval_ms=self._poll_interval_ms,
                    on_recalculate=self._on_recalculate,
                )
                await session.start()
                self._sessions[entity_id] = session
                logger.info(f"Tracking started for {entity_id} ({len(self._sessions)} active)")
        if route is not None:
            session.apply_route(route)
        return session

    async def detach(self, entity_id: str) -> bool:
        async with self._lock:
            session = self._sessions.pop(entity_id, None)
        if session is None:
            return False
        await session.stop()
        logger.info(f"Tracking stopped for {entity_id} ({len(self._sessions)} active)")
        return True

    async def close(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            try:
                await session.stop()
            except Exception:
                logger.exception(f"Failed to stop tracking for {session.entity_id}")
