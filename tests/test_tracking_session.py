import asyncio
import math

import pytest

from src.fieldtrack.models.domain import DeviationState, RouteUpdate
from src.fieldtrack.services.tracking.deviation import DeviationConfig
from src.fieldtrack.services.tracking.session import TrackingRegistry, TrackingSession

METERS_PER_DEGREE = math.pi / 180 * 6371000


class DummySource:
    def __init__(self, record=None):
        self.record = record
        self.subscriptions = {}
        self.unsubscribed = []

    async def fetch_latest(self, entity_id):
        return self.record

    async def subscribe(self, entity_id, callback):
        self.subscriptions[entity_id] = callback

        async def unsubscribe():
            self.unsubscribed.append(entity_id)

        return unsubscribe


def _route(encoded: str, phase: str = "going_to_client") -> RouteUpdate:
    return RouteUpdate(
        encoded_path=encoded,
        initial_distance_meters=1110,
        initial_duration_seconds=300,
        phase_tag=phase,
    )


def test_session_feeds_progress_and_deviation(straight_route, record_factory):
    session = TrackingSession("provider-1", DummySource())
    session.apply_route(_route(straight_route))

    session.feed.offer(record_factory(0.0, 0.005, seconds=1, address="Rua A"))
    snapshot = session.snapshot()

    assert snapshot.route_available
    assert snapshot.phase_tag == "going_to_client"
    assert snapshot.position.address == "Rua A"
    assert snapshot.progress.progress_percent == pytest.approx(50, abs=2.5)
    assert snapshot.progress.remaining_distance_text == "556 m"
    assert snapshot.progress.remaining_time_text == "3 min"
    assert snapshot.deviation.state is DeviationState.ON_ROUTE
    assert not snapshot.recalculation_requested
    assert snapshot.nearest_vertex_index == 10
    assert snapshot.route_error is None


def test_session_requests_recalculation_and_new_route_clears_it(single_segment_route, encode, record_factory):
    requested = []
    ticks = iter(range(0, 100000, 1000))
    session = TrackingSession(
        "provider-1",
        DummySource(),
        deviation_config=DeviationConfig(max_deviation_meters=50, min_dwell_ms=3000, cooldown_ms=10000),
        on_recalculate=requested.append,
        clock=lambda: next(ticks),
    )
    session.apply_route(_route(single_segment_route))
    off_lat = 80 / METERS_PER_DEGREE

    for second in range(1, 6):
        session.feed.offer(record_factory(off_lat, 0.005, seconds=second))

    assert requested == ["provider-1"]
    assert session.recalculation_requested
    assert session.snapshot().deviation.state is DeviationState.TRIGGERED

    detour = encode([(0.0, 0.0), (off_lat, 0.0), (off_lat, 0.01)])
    session.apply_route(_route(detour))

    snapshot = session.snapshot()
    assert not snapshot.recalculation_requested
    assert snapshot.deviation.state is DeviationState.ON_ROUTE
    assert snapshot.deviation.distance_from_route == pytest.approx(0, abs=1)


def test_snapshot_reports_malformed_route(record_factory):
    session = TrackingSession("provider-1", DummySource())
    assert session.snapshot().route_error is None

    session.apply_route(_route("_p~iF"))
    session.feed.offer(record_factory(0.0, 0.005, seconds=1))
    snapshot = session.snapshot()

    assert not snapshot.route_available
    assert snapshot.route_error
    assert snapshot.nearest_vertex_index is None
    assert snapshot.deviation.state is DeviationState.ON_ROUTE


def test_positions_before_route_are_kept_but_not_evaluated(straight_route, record_factory):
    session = TrackingSession("provider-1", DummySource())

    session.feed.offer(record_factory(0.0, 0.005, seconds=1))
    assert session.snapshot().progress is None

    session.apply_route(_route(straight_route))

    assert session.snapshot().progress.progress_percent == pytest.approx(50, abs=2.5)


def test_sessions_are_independent(straight_route, record_factory):
    source = DummySource()
    first = TrackingSession("provider-1", source)
    second = TrackingSession("provider-2", source)
    first.apply_route(_route(straight_route))

    first.feed.offer(record_factory(0.0, 0.005, seconds=1))

    assert second.feed.latest() is None
    assert second.snapshot().progress is None
    assert not second.decoder.is_cached(straight_route)


def test_registry_attach_detach_lifecycle(straight_route, record_factory):
    source = DummySource(record_factory(0.0, 0.005, seconds=1))

    async def scenario():
        registry = TrackingRegistry(source, poll_interval_ms=10)
        session = await registry.attach("provider-1", _route(straight_route))
        again = await registry.attach("provider-1")
        await asyncio.sleep(0.05)
        attached = session.snapshot()

        assert again is session
        assert "provider-1" in registry
        assert len(registry) == 1

        assert await registry.detach("provider-1")
        assert not await registry.detach("provider-1")
        with pytest.raises(KeyError):
            registry.get("provider-1")

        await registry.attach("provider-2")
        await registry.close()
        return attached, session

    attached, session = asyncio.run(scenario())

    assert attached.attached
    assert attached.position is not None
    assert attached.progress.progress_percent == pytest.approx(50, abs=2.5)
    assert not session.feed.attached
    assert source.unsubscribed == ["provider-1", "provider-2"]
