"""Tests for the OpenRouteService and TomTom provider adapters.

Raw responses are fed either straight into normalize() or through an
httpx.MockTransport so the HTTP error mapping is exercised as well.
"""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from roadwatch.core.exceptions import (
    NoRouteFoundError,
    ProviderConfigError,
    ProviderNetworkError,
    ProviderParseError,
    ProviderTimeoutError,
    RateLimitedError,
)
from roadwatch.domains.routing.providers import OpenRouteServiceProvider, TomTomProvider
from roadwatch.domains.routing.schemas import Coordinate, RoutePreference
from roadwatch.infra.settings import ProviderSettings

AMSTERDAM = Coordinate(lat=52.3676, lng=4.9041)
UTRECHT = Coordinate(lat=52.0907, lng=5.1214)


def _settings(**overrides) -> ProviderSettings:
    values = dict(
        ors_api_key="ors-test-key",
        ors_base_url="https://ors.test",
        ors_profile="driving-car",
        tomtom_api_key="tomtom-test-key",
        tomtom_base_url="https://tomtom.test",
        nominatim_base_url="https://nominatim.test",
        nominatim_user_agent="roadwatch-tests",
        language="nl-NL",
        geocode_country_codes="nl",
    )
    values.update(overrides)
    return ProviderSettings(**values)


def _ors_feature(coordinates, distance=45000, duration=1800, steps=None) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": coordinates},
        "properties": {
            "summary": {"distance": distance, "duration": duration},
            "segments": [{"steps": steps or []}],
        },
    }


ORS_STEPS = [
    {"instruction": "Head south on Damrak", "distance": 100, "duration": 10, "type": 11,
     "name": "Damrak", "way_points": [0, 1]},
    {"instruction": "Turn right onto A2", "distance": 44900, "duration": 1790, "type": 1,
     "name": "A2", "way_points": [1, 2]},
    {"instruction": "Arrive at destination", "distance": 0, "duration": 0, "type": 10,
     "name": "-", "way_points": [2, 2]},
]

ORS_RESPONSE = {
    "type": "FeatureCollection",
    "features": [
        _ors_feature([[4.9041, 52.3676], [4.95, 52.30], [5.1214, 52.0907]], steps=ORS_STEPS),
        _ors_feature([[4.9041, 52.3676], [5.00, 52.25], [5.1214, 52.0907]], distance=48000, duration=2100),
    ],
}

TOMTOM_RESPONSE = {
    "routes": [
        {
            "summary": {"lengthInMeters": 1000, "travelTimeInSeconds": 120, "trafficDelayInSeconds": 0},
            "legs": [{"points": [
                {"latitude": 52.000, "longitude": 5.0},
                {"latitude": 52.005, "longitude": 5.0},
                {"latitude": 52.009, "longitude": 5.0},
            ]}],
            "guidance": {"instructions": [
                {"routeOffsetInMeters": 0, "pointIndex": 0, "maneuver": "DEPART", "message": "Vertrek",
                 "point": {"latitude": 52.000, "longitude": 5.0}},
                {"routeOffsetInMeters": 550, "pointIndex": 1, "maneuver": "TURN_LEFT",
                 "message": "Sla linksaf", "street": "Lange Viestraat",
                 "point": {"latitude": 52.005, "longitude": 5.0}},
                {"routeOffsetInMeters": 1000, "pointIndex": 2, "maneuver": "ARRIVE", "message": "Aankomst"},
            ]},
        },
    ],
}


def test_ors_normalize_flips_coordinates_and_maps_steps() -> None:
    """ORS [lng, lat] geometry becomes (lat, lng) and step types map to maneuvers."""

    routes = OpenRouteServiceProvider(_settings()).normalize(ORS_RESPONSE)

    assert len(routes) == 2
    main = routes[0]
    assert main.provider == "openrouteservice"
    assert main.polyline[0] == AMSTERDAM
    assert main.polyline[-1] == UTRECHT
    assert main.distance_meters == 45000
    assert main.duration_seconds == 1800
    assert main.adjusted_duration_seconds == 1800
    assert main.average_speed_kmh == 90.0
    assert not main.is_alternative
    assert routes[1].is_alternative

    depart, turn, arrive = main.steps
    assert [s.index for s in main.steps] == [0, 1, 2]
    assert depart.maneuver_type == "depart"
    assert (turn.maneuver_type, turn.maneuver_modifier) == ("turn", "right")
    assert turn.location == main.polyline[1]
    assert turn.polyline_index == 1
    assert arrive.maneuver_type == "arrive"
    # "-" 表示无道路名
    assert arrive.road_name == ""


def test_ors_normalize_empty_features_is_no_route() -> None:
    with pytest.raises(NoRouteFoundError) as exc_info:
        OpenRouteServiceProvider(_settings()).normalize({"type": "FeatureCollection", "features": []})

    assert exc_info.value.error_code == "NO_ROUTE_FOUND"


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"features": [{"geometry": {}}]},
        {"features": [_ors_feature([[4.9, 52.3], [5.1]])]},
        # 纬度超出范围
        {"features": [_ors_feature([[4.9, 95.0], [5.1, 52.0]])]},
        {"features": [_ors_feature([])]},
    ],
)
def test_ors_normalize_malformed_is_parse_error(payload) -> None:
    with pytest.raises(ProviderParseError) as exc_info:
        OpenRouteServiceProvider(_settings()).normalize(payload)

    assert exc_info.value.error_code == "PARSE_ERROR"


def test_tomtom_normalize_derives_step_distances_from_offsets() -> None:
    """Step distance is the gap to the next instruction offset, the last one uses total length."""

    routes = TomTomProvider(_settings()).normalize(TOMTOM_RESPONSE)

    route = routes[0]
    assert route.provider == "tomtom"
    assert len(route.polyline) == 3
    assert [s.distance_meters for s in route.steps] == [550, 450, 0]
    assert route.steps[1].maneuver_type == "turn"
    assert route.steps[1].maneuver_modifier == "left"
    assert route.steps[1].road_name == "Lange Viestraat"
    # 无 point 时按 pointIndex 取折线坐标
    assert route.steps[2].location == route.polyline[2]
    assert route.average_speed_kmh == 30.0


def test_tomtom_normalize_empty_routes_is_no_route() -> None:
    with pytest.raises(NoRouteFoundError):
        TomTomProvider(_settings()).normalize({"routes": []})


def test_tomtom_normalize_missing_summary_is_parse_error() -> None:
    with pytest.raises(ProviderParseError):
        TomTomProvider(_settings()).normalize({"routes": [{"legs": []}]})


def test_ors_fetch_sends_lng_lat_and_auth_header() -> None:
    """The request body carries [lng, lat] pairs and the ORS preference name."""

    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=ORS_RESPONSE)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenRouteServiceProvider(_settings(), client)
            return await provider.fetch_routes(
                AMSTERDAM, UTRECHT, RoutePreference.AVOID_TOLLS, alternatives=True,
            )

    routes = asyncio.run(scenario())

    assert len(routes) == 2
    assert captured["url"] == "https://ors.test/v2/directions/driving-car/geojson"
    assert captured["auth"] == "ors-test-key"
    assert captured["body"]["coordinates"] == [[4.9041, 52.3676], [5.1214, 52.0907]]
    assert captured["body"]["preference"] == "fastest"
    assert captured["body"]["options"] == {"avoid_features": ["tollways"]}
    assert captured["body"]["alternative_routes"]["target_count"] == 2


def test_tomtom_fetch_uses_lat_lng_path_and_route_type() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["params"] = dict(request.url.params)
        return httpx.Response(200, json=TOMTOM_RESPONSE)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = TomTomProvider(_settings(), client)
            return await provider.fetch_routes(AMSTERDAM, UTRECHT, RoutePreference.SCENIC)

    asyncio.run(scenario())

    assert captured["path"] == "/routing/1/calculateRoute/52.367600,4.904100:52.090700,5.121400/json"
    assert captured["params"]["routeType"] == "thrilling"
    assert captured["params"]["key"] == "tomtom-test-key"
    assert "maxAlternatives" not in captured["params"]


def _fetch_ors_with(handler):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenRouteServiceProvider(_settings(), client)
            return await provider.fetch_routes(AMSTERDAM, UTRECHT, RoutePreference.FASTEST)

    return asyncio.run(scenario())


def test_http_429_maps_to_rate_limited() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "7"}, json={"error": "quota"})

    with pytest.raises(RateLimitedError) as exc_info:
        _fetch_ors_with(handler)

    assert exc_info.value.retry_after_seconds == 7
    assert exc_info.value.status_code == 429


def test_http_timeout_maps_to_provider_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderTimeoutError) as exc_info:
        _fetch_ors_with(handler)

    assert exc_info.value.error_code == "TIMEOUT"


def test_http_server_error_maps_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(ProviderNetworkError) as exc_info:
        _fetch_ors_with(handler)

    assert exc_info.value.details["status"] == 503


def test_http_connection_failure_maps_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderNetworkError):
        _fetch_ors_with(handler)


def test_invalid_json_body_maps_to_parse_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(ProviderParseError):
        _fetch_ors_with(handler)


def test_missing_api_key_is_config_error() -> None:
    async def scenario():
        provider = OpenRouteServiceProvider(_settings(ors_api_key=""))
        return await provider.fetch_routes(AMSTERDAM, UTRECHT, RoutePreference.FASTEST)

    with pytest.raises(ProviderConfigError):
        asyncio.run(scenario())
