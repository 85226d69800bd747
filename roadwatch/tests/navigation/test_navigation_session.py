"""Integration tests for NavigationSession.

A fake monotonic clock drives the coordinator so the 10 s reroute throttle
and the 429 backoff can be stepped through deterministically. Providers are
in-memory dummies; nothing touches the network.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from roadwatch.core.config import Settings
from roadwatch.core.exceptions import ProviderNetworkError, RateLimitedError
from roadwatch.domains.hazards.proximity import ProximityAlertMatcher
from roadwatch.domains.hazards.schemas import HazardAlert
from roadwatch.domains.navigation import (
    DrivenDistanceRecorder,
    NavigationEvent,
    NavigationEventType,
    NavigationSession,
    NavigationState,
    OffRouteRerouter,
    RerouteStatus,
)
from roadwatch.domains.routing.coordinator import RouteRequestCoordinator
from roadwatch.domains.routing.geodesy import offset_north
from roadwatch.domains.routing.providers import RoutingProvider
from roadwatch.domains.routing.schemas import Coordinate, Route
from roadwatch.domains.routing.service import RouteAcquisitionService

START = Coordinate(lat=52.0, lng=5.0)
DESTINATION = offset_north(START, 1000)
OFF_ROUTE = offset_north(START, -200)
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _route(route_id: str, origin: Coordinate = START) -> Route:
    polyline = tuple(offset_north(origin, i * 100) for i in range(11))
    return Route(
        id=route_id,
        polyline=polyline,
        distance_meters=1000,
        duration_seconds=100,
        adjusted_duration_seconds=100,
    )


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class _DummyProvider(RoutingProvider):
    name = "dummy"

    def __init__(self, outcomes: Optional[list] = None, gate: Optional[asyncio.Event] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.gate = gate
        self.calls: List[Coordinate] = []

    async def fetch_routes(self, origin, destination, preference, *, alternatives=False):
        self.calls.append(origin)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else _route(f"route-{len(self.calls)}", origin)
        if isinstance(outcome, Exception):
            raise outcome
        return [outcome]


class _EventRecorder:
    def __init__(self) -> None:
        self.events: List[NavigationEvent] = []

    async def __call__(self, event: NavigationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[NavigationEventType]:
        return [e.type for e in self.events]


def _session(provider: _DummyProvider, clock: _FakeClock, recorder: Optional[_EventRecorder] = None, **kwargs):
    coordinator = RouteRequestCoordinator(clock=clock, sleep=clock.sleep)
    acquisition = RouteAcquisitionService(provider)
    session = NavigationSession(
        coordinator,
        acquisition,
        proximity=ProximityAlertMatcher(now=lambda: NOW),
        event_sink=recorder,
        **kwargs,
    )
    return session, coordinator


def _alert(alert_id: str, position: Coordinate) -> HazardAlert:
    return HazardAlert(
        id=alert_id, lat=position.lat, lng=position.lng, type="police",
        created_at=NOW - timedelta(minutes=5), expires_at=NOW + timedelta(hours=1),
    )


def test_reroute_throttled_to_one_attempt_per_ten_seconds() -> None:
    """Off-route at t=0, 5 and 10 s triggers reroutes only at t=0 and t=10."""

    async def scenario():
        clock = _FakeClock()
        provider = _DummyProvider(outcomes=[ProviderNetworkError(), ProviderNetworkError()])
        session, _ = _session(provider, clock)
        await session.start(_route("base"), DESTINATION)

        triggered = []
        outcomes = []
        for _ in range(3):
            update = await session.update_position(OFF_ROUTE)
            triggered.append(update.reroute_triggered)
            if session.pending_reroute is not None:
                outcomes.append(await session.pending_reroute)
            clock.advance(5)
        return session, provider, triggered, outcomes

    session, provider, triggered, outcomes = asyncio.run(scenario())

    assert triggered == [True, False, True]
    assert len(provider.calls) == 2
    assert all(o.status == RerouteStatus.FAILED for o in outcomes)
    # 改道失败保留原路线
    assert session.active_route.id == "base"
    assert session.state == NavigationState.OFF_ROUTE


def test_back_to_back_off_route_updates_launch_one_reroute() -> None:
    """A second update arriving before the reroute task has run does not start another one."""

    async def scenario():
        clock = _FakeClock()
        provider = _DummyProvider()
        session, _ = _session(provider, clock)
        await session.start(_route("base"), DESTINATION)

        first = await session.update_position(OFF_ROUTE)
        task = session.pending_reroute
        second = await session.update_position(OFF_ROUTE)
        same_task = session.pending_reroute is task
        outcome = await task
        return provider, first, second, same_task, outcome

    provider, first, second, same_task, outcome = asyncio.run(scenario())

    assert (first.reroute_triggered, second.reroute_triggered) == (True, False)
    assert same_task
    assert len(provider.calls) == 1
    assert outcome.status == RerouteStatus.SUCCESS


def test_stop_before_reroute_runs_frees_rerouter() -> None:
    """Cancelling a reroute task that never started still clears the in-progress flag."""

    async def scenario():
        clock = _FakeClock()
        provider = _DummyProvider()
        coordinator = RouteRequestCoordinator(clock=clock, sleep=clock.sleep)
        acquisition = RouteAcquisitionService(provider)
        rerouter = OffRouteRerouter(coordinator, acquisition)
        session = NavigationSession(coordinator, acquisition, rerouter=rerouter)
        await session.start(_route("base"), DESTINATION)
        await session.update_position(OFF_ROUTE)
        assert rerouter.in_progress
        await session.stop()
        return provider, rerouter

    provider, rerouter = asyncio.run(scenario())

    assert not rerouter.in_progress
    assert provider.calls == []


def test_successful_reroute_replaces_route_and_bumps_generation() -> None:
    async def scenario():
        clock = _FakeClock()
        recorder = _EventRecorder()
        provider = _DummyProvider(outcomes=[_route("detour", OFF_ROUTE)])
        session, _ = _session(provider, clock, recorder)
        await session.start(_route("base"), DESTINATION)
        generation_before = session.generation

        await session.update_position(OFF_ROUTE)
        outcome = await session.pending_reroute
        return session, provider, recorder, generation_before, outcome

    session, provider, recorder, generation_before, outcome = asyncio.run(scenario())

    assert outcome.status == RerouteStatus.SUCCESS
    assert session.active_route.id == "detour"
    assert session.state == NavigationState.TRACKING
    assert session.generation == generation_before + 1
    # 改道从当前位置出发
    assert provider.calls == [OFF_ROUTE]
    assert recorder.types()[-1] == NavigationEventType.ROUTE_REPLACED
    assert recorder.events[-1].payload == {"route_id": "detour"}


def test_rate_limited_reroute_keeps_route_and_reports_wait() -> None:
    """A 429 keeps the stale route, stays off-route and emits a wait message."""

    async def scenario():
        clock = _FakeClock()
        recorder = _EventRecorder()
        provider = _DummyProvider(outcomes=[RateLimitedError()])
        session, coordinator = _session(provider, clock, recorder)
        await session.start(_route("base"), DESTINATION)

        await session.update_position(OFF_ROUTE)
        outcome = await session.pending_reroute
        return session, coordinator, recorder, outcome

    session, coordinator, recorder, outcome = asyncio.run(scenario())

    assert outcome.status == RerouteStatus.RATE_LIMITED
    assert outcome.retry_after_seconds == 2
    assert session.active_route.id == "base"
    assert session.state == NavigationState.OFF_ROUTE
    assert coordinator.backoff_state.failure_count == 1
    wait = recorder.events[-1]
    assert wait.type == NavigationEventType.REROUTE_WAIT
    assert wait.payload["message"] == "请稍候... (2s)"


def test_stop_cancels_pending_reroute() -> None:
    """Stopping while a reroute is in flight discards it and frees the coordinator."""

    async def scenario():
        clock = _FakeClock()
        recorder = _EventRecorder()
        gate = asyncio.Event()
        provider = _DummyProvider(outcomes=[_route("late", OFF_ROUTE)], gate=gate)
        session, coordinator = _session(provider, clock, recorder)
        await session.start(_route("base"), DESTINATION)

        await session.update_position(OFF_ROUTE)
        # 让后台改道跑到等待网络响应处
        for _ in range(5):
            await asyncio.sleep(0)
        assert len(provider.calls) == 1

        await session.stop()
        gate.set()
        await asyncio.sleep(0)
        return session, coordinator, recorder

    session, coordinator, recorder = asyncio.run(scenario())

    assert session.pending_reroute is None
    assert session.state == NavigationState.IDLE
    assert session.active_route is None
    assert not coordinator.in_flight
    assert NavigationEventType.ROUTE_REPLACED not in recorder.types()
    assert recorder.types()[-1] == NavigationEventType.NAVIGATION_STOPPED


def test_start_bumps_generation_and_tracks_progress() -> None:
    async def scenario():
        recorder = _EventRecorder()
        session, _ = _session(_DummyProvider(), _FakeClock(), recorder)
        await session.start(_route("base"), DESTINATION)
        update = await session.update_position(offset_north(START, 400))
        return session, recorder, update

    session, recorder, update = asyncio.run(scenario())

    assert session.generation == 1
    assert update.generation == 1
    assert update.state == NavigationState.TRACKING
    assert not update.reroute_triggered
    assert update.remaining_distance_meters == pytest.approx(600)
    assert recorder.types() == [NavigationEventType.PROGRESS]
    assert recorder.events[0].payload["state"] == "tracking"


def test_plan_routes_goes_through_coordinator_cache() -> None:
    async def scenario():
        provider = _DummyProvider()
        session, _ = _session(provider, _FakeClock())
        first = await session.plan_routes((52.0, 5.0), {"lat": 52.009, "lng": 5.0}, "shortest")
        second = await session.plan_routes(START, Coordinate(lat=52.009, lng=5.0), "shortest")
        return provider, first, second

    provider, first, second = asyncio.run(scenario())

    assert first == second
    assert len(provider.calls) == 1


def test_proximity_prompts_while_idle_once_per_alert() -> None:
    """Proximity matching runs without an active route and prompts each alert once."""

    async def scenario():
        recorder = _EventRecorder()
        session, _ = _session(_DummyProvider(), _FakeClock(), recorder)
        alerts = [_alert("police-1", offset_north(START, 50))]
        first = await session.update_position(START, alerts)
        second = await session.update_position(START, alerts)
        return recorder, first, second

    recorder, first, second = asyncio.run(scenario())

    assert first.state == NavigationState.IDLE
    assert first.proximity_prompt.alert.id == "police-1"
    assert second.proximity_prompt is None
    assert recorder.types() == [NavigationEventType.PROXIMITY_PROMPT]


def test_failing_event_sink_does_not_break_updates() -> None:
    async def broken_sink(event: NavigationEvent) -> None:
        raise RuntimeError("socket closed")

    async def scenario():
        coordinator = RouteRequestCoordinator()
        session = NavigationSession(
            coordinator, RouteAcquisitionService(_DummyProvider()), event_sink=broken_sink,
        )
        await session.start(_route("base"), DESTINATION)
        return await session.update_position(START)

    update = asyncio.run(scenario())

    assert update.state == NavigationState.TRACKING


def test_odometer_records_driven_distance() -> None:
    reported = []

    async def add_driven_km(km: float) -> None:
        reported.append(km)

    async def scenario():
        odometer = DrivenDistanceRecorder(add_driven_km)
        session, _ = _session(_DummyProvider(), _FakeClock(), odometer=odometer)
        await session.start(_route("base"), DESTINATION)
        for meters in (0, 100, 200):
            await session.update_position(offset_north(START, meters))
        await odometer.drain()
        return odometer

    odometer = asyncio.run(scenario())

    assert len(reported) == 2
    assert odometer.total_km == sum(reported)
    assert abs(odometer.total_km - 0.2) < 1e-6


def test_from_settings_applies_thresholds() -> None:
    settings = Settings(off_route_threshold_m=20, proximity_radius_m=30)

    async def scenario():
        session = NavigationSession.from_settings(
            RouteRequestCoordinator(), RouteAcquisitionService(_DummyProvider()), settings,
        )
        await session.start(_route("base"), DESTINATION)
        update = await session.update_position(offset_north(START, -25))
        await session.stop()
        return update

    update = asyncio.run(scenario())

    assert update.state == NavigationState.OFF_ROUTE
