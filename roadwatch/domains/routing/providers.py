"""
路径服务适配器

每个外部路径服务一个适配器，统一实现 RoutingProvider 接口：
1. 调用 infra 层客户端获取原始 JSON
2. 用该服务专属的 pydantic 模型校验响应（校验失败 → PARSE_ERROR）
3. 归一化为标准 Route：坐标统一为 (lat, lng)，步骤按行驶顺序排列

支持的服务：
- openrouteservice: 主路径服务，几何坐标为 [lng, lat]，需要翻转
- tomtom: 备用路径服务，坐标本身为 lat/lng
"""
from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Annotated, Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from roadwatch.core.exceptions import NoRouteFoundError, ProviderParseError
from roadwatch.infra.clients.openrouteservice import ors_directions_async
from roadwatch.infra.clients.tomtom import tomtom_calculate_route_async
from roadwatch.infra.settings import ProviderSettings
from .schemas import Coordinate, Route, RoutePreference, RouteStep

logger = logging.getLogger(__name__)


# ============================================================================
# 机动类型映射
# ============================================================================

# ORS 指令类型编号 -> (maneuver_type, maneuver_modifier)
ORS_MANEUVERS: dict[int, tuple[str, Optional[str]]] = {
    0: ("turn", "left"),
    1: ("turn", "right"),
    2: ("turn", "sharp left"),
    3: ("turn", "sharp right"),
    4: ("turn", "slight left"),
    5: ("turn", "slight right"),
    6: ("continue", "straight"),
    7: ("roundabout", None),
    8: ("exit roundabout", None),
    9: ("turn", "uturn"),
    10: ("arrive", None),
    11: ("depart", None),
    12: ("fork", "left"),
    13: ("fork", "right"),
}

TOMTOM_MANEUVERS: dict[str, tuple[str, Optional[str]]] = {
    "DEPART": ("depart", None),
    "ARRIVE": ("arrive", None),
    "ARRIVE_LEFT": ("arrive", "left"),
    "ARRIVE_RIGHT": ("arrive", "right"),
    "STRAIGHT": ("continue", "straight"),
    "FOLLOW": ("continue", "straight"),
    "TURN_LEFT": ("turn", "left"),
    "TURN_RIGHT": ("turn", "right"),
    "SHARP_LEFT": ("turn", "sharp left"),
    "SHARP_RIGHT": ("turn", "sharp right"),
    "BEAR_LEFT": ("turn", "slight left"),
    "BEAR_RIGHT": ("turn", "slight right"),
    "KEEP_LEFT": ("fork", "left"),
    "KEEP_RIGHT": ("fork", "right"),
    "MAKE_UTURN": ("turn", "uturn"),
    "TRY_MAKE_UTURN": ("turn", "uturn"),
    "ROUNDABOUT_CROSS": ("roundabout", "straight"),
    "ROUNDABOUT_LEFT": ("roundabout", "left"),
    "ROUNDABOUT_RIGHT": ("roundabout", "right"),
    "ROUNDABOUT_BACK": ("roundabout", "uturn"),
    "ENTRANCE_RAMP": ("on ramp", None),
    "ENTER_MOTORWAY": ("on ramp", None),
    "ENTER_FREEWAY": ("on ramp", None),
    "ENTER_HIGHWAY": ("on ramp", None),
    "TAKE_EXIT": ("off ramp", None),
    "MOTORWAY_EXIT_LEFT": ("off ramp", "left"),
    "MOTORWAY_EXIT_RIGHT": ("off ramp", "right"),
    "TAKE_FERRY": ("ferry", None),
}

# 偏好 -> ORS preference
ORS_PREFERENCES: dict[RoutePreference, str] = {
    RoutePreference.FASTEST: "fastest",
    RoutePreference.SHORTEST: "shortest",
    RoutePreference.SCENIC: "recommended",
    RoutePreference.AVOID_TOLLS: "fastest",
    RoutePreference.BALANCED: "recommended",
}

# 偏好 -> TomTom routeType
TOMTOM_ROUTE_TYPES: dict[RoutePreference, str] = {
    RoutePreference.FASTEST: "fastest",
    RoutePreference.SHORTEST: "shortest",
    RoutePreference.SCENIC: "thrilling",
    RoutePreference.AVOID_TOLLS: "fastest",
    RoutePreference.BALANCED: "eco",
}


# ============================================================================
# 各服务原始响应模型
# ============================================================================

LngLat = Annotated[list[float], Field(min_length=2)]


class OrsStep(BaseModel):
    instruction: str = ""
    distance: float = 0.0
    duration: float = 0.0
    type: int = 6
    name: str = ""
    way_points: list[int] = Field(default_factory=list)


class OrsSegment(BaseModel):
    steps: list[OrsStep] = Field(default_factory=list)


class OrsSummary(BaseModel):
    distance: float = Field(0.0, ge=0)
    duration: float = Field(0.0, ge=0)


class OrsProperties(BaseModel):
    summary: OrsSummary
    segments: list[OrsSegment] = Field(default_factory=list)


class OrsGeometry(BaseModel):
    coordinates: list[LngLat]


class OrsFeature(BaseModel):
    geometry: OrsGeometry
    properties: OrsProperties


class OrsDirectionsResponse(BaseModel):
    """ORS geojson 响应（FeatureCollection）"""
    features: list[OrsFeature] = Field(default_factory=list)


class TomTomPoint(BaseModel):
    latitude: float
    longitude: float


class TomTomSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    length_in_meters: float = Field(..., alias="lengthInMeters", ge=0)
    travel_time_in_seconds: float = Field(..., alias="travelTimeInSeconds", ge=0)
    traffic_delay_in_seconds: float = Field(0.0, alias="trafficDelayInSeconds")


class TomTomLeg(BaseModel):
    points: list[TomTomPoint] = Field(default_factory=list)


class TomTomInstruction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    maneuver: str = ""
    street: str = ""
    point: Optional[TomTomPoint] = None
    point_index: Optional[int] = Field(None, alias="pointIndex", ge=0)
    route_offset_in_meters: float = Field(0.0, alias="routeOffsetInMeters", ge=0)


class TomTomGuidance(BaseModel):
    instructions: list[TomTomInstruction] = Field(default_factory=list)


class TomTomRoute(BaseModel):
    summary: TomTomSummary
    legs: list[TomTomLeg] = Field(default_factory=list)
    guidance: Optional[TomTomGuidance] = None


class TomTomRouteResponse(BaseModel):
    routes: list[TomTomRoute] = Field(default_factory=list)


# ============================================================================
# 适配器
# ============================================================================

def _average_speed_kmh(distance_m: float, duration_s: float) -> float:
    if duration_s <= 0:
        return 0.0
    return float(round(distance_m / duration_s * 3.6))


def _build_route(
    provider: str,
    polyline: list[Coordinate],
    distance_m: float,
    duration_s: float,
    steps: list[RouteStep],
    is_alternative: bool,
) -> Route:
    return Route(
        id=uuid.uuid4().hex,
        provider=provider,
        polyline=tuple(polyline),
        distance_meters=distance_m,
        duration_seconds=duration_s,
        adjusted_duration_seconds=duration_s,
        steps=tuple(steps),
        is_alternative=is_alternative,
        average_speed_kmh=_average_speed_kmh(distance_m, duration_s),
    )


class RoutingProvider(ABC):
    """路径服务适配器接口"""

    name: str = ""

    @abstractmethod
    async def fetch_routes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference,
        *,
        alternatives: bool = False,
    ) -> list[Route]:
        """
        获取标准化路线，第一条为主路线，其余为备选路线

        Raises:
            RateLimitedError / NoRouteFoundError / ProviderParseError /
            ProviderTimeoutError / ProviderNetworkError
        """


class OpenRouteServiceProvider(RoutingProvider):
    """OpenRouteService 适配器（主路径服务）"""

    name = "openrouteservice"

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._client = client
        self._timeout = timeout

    async def fetch_routes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference,
        *,
        alternatives: bool = False,
    ) -> list[Route]:
        data = await ors_directions_async(
            origin.lng, origin.lat, destination.lng, destination.lat,
            preference=ORS_PREFERENCES[preference],
            avoid_tolls=preference is RoutePreference.AVOID_TOLLS,
            alternatives=alternatives,
            settings=self._settings,
            client=self._client,
            timeout=self._timeout,
        )
        return self.normalize(data)

    def normalize(self, data: Any) -> list[Route]:
        try:
            response = OrsDirectionsResponse.model_validate(data)
        except ValidationError as e:
            logger.error(f"ORS响应格式错误: {e.error_count()} 处")
            raise ProviderParseError(details=f"openrouteservice: {e.errors()[0]['msg']}") from e

        if not response.features:
            raise NoRouteFoundError(details="openrouteservice returned no routes")

        try:
            return self._build_routes(response)
        except ValidationError as e:
            # 坐标超出经纬度范围
            raise ProviderParseError(details=f"openrouteservice: {e.errors()[0]['msg']}") from e

    def _build_routes(self, response: OrsDirectionsResponse) -> list[Route]:
        routes = []
        for idx, feature in enumerate(response.features):
            # [lng, lat] -> (lat, lng)
            polyline = [Coordinate(lat=c[1], lng=c[0]) for c in feature.geometry.coordinates]
            if not polyline:
                raise ProviderParseError(details="openrouteservice route has empty geometry")
            steps = self._normalize_steps(feature.properties.segments, polyline)
            summary = feature.properties.summary
            routes.append(_build_route(
                self.name, polyline, summary.distance, summary.duration, steps, idx > 0,
            ))
        return routes

    @staticmethod
    def _normalize_steps(segments: list[OrsSegment], polyline: list[Coordinate]) -> list[RouteStep]:
        steps: list[RouteStep] = []
        for segment in segments:
            for step in segment.steps:
                maneuver_type, modifier = ORS_MANEUVERS.get(step.type, ("turn", None))
                polyline_index: Optional[int] = None
                if step.way_points and 0 <= step.way_points[0] < len(polyline):
                    polyline_index = step.way_points[0]
                location = polyline[polyline_index] if polyline_index is not None else polyline[0]
                steps.append(RouteStep(
                    index=len(steps),
                    instruction_text=step.instruction,
                    distance_meters=max(step.distance, 0.0),
                    maneuver_type=maneuver_type,
                    maneuver_modifier=modifier,
                    location=location,
                    road_name=step.name if step.name != "-" else "",
                    polyline_index=polyline_index,
                ))
        return steps


class TomTomProvider(RoutingProvider):
    """TomTom 适配器（备用路径服务）"""

    name = "tomtom"
    MAX_ALTERNATIVES = 2

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._client = client
        self._timeout = timeout

    async def fetch_routes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference,
        *,
        alternatives: bool = False,
    ) -> list[Route]:
        data = await tomtom_calculate_route_async(
            origin.lat, origin.lng, destination.lat, destination.lng,
            route_type=TOMTOM_ROUTE_TYPES[preference],
            traffic=True,
            avoid_tolls=preference is RoutePreference.AVOID_TOLLS,
            max_alternatives=self.MAX_ALTERNATIVES if alternatives else 0,
            settings=self._settings,
            client=self._client,
            timeout=self._timeout,
        )
        return self.normalize(data)

    def normalize(self, data: Any) -> list[Route]:
        try:
            response = TomTomRouteResponse.model_validate(data)
        except ValidationError as e:
            logger.error(f"TomTom响应格式错误: {e.error_count()} 处")
            raise ProviderParseError(details=f"tomtom: {e.errors()[0]['msg']}") from e

        if not response.routes:
            raise NoRouteFoundError(details="tomtom returned no routes")

        try:
            return self._build_routes(response)
        except ValidationError as e:
            raise ProviderParseError(details=f"tomtom: {e.errors()[0]['msg']}") from e

    def _build_routes(self, response: TomTomRouteResponse) -> list[Route]:
        routes = []
        for idx, raw in enumerate(response.routes):
            polyline = [
                Coordinate(lat=p.latitude, lng=p.longitude)
                for leg in raw.legs
                for p in leg.points
            ]
            if not polyline:
                raise ProviderParseError(details="tomtom route has no points")
            instructions = raw.guidance.instructions if raw.guidance else []
            steps = self._normalize_steps(instructions, polyline, raw.summary.length_in_meters)
            routes.append(_build_route(
                self.name,
                polyline,
                raw.summary.length_in_meters,
                raw.summary.travel_time_in_seconds,
                steps,
                idx > 0,
            ))
        return routes

    @staticmethod
    def _normalize_steps(
        instructions: list[TomTomInstruction],
        polyline: list[Coordinate],
        total_length: float,
    ) -> list[RouteStep]:
        steps: list[RouteStep] = []
        for i, instruction in enumerate(instructions):
            # 步骤距离 = 下一条指令偏移 - 本条偏移
            if i + 1 < len(instructions):
                next_offset = instructions[i + 1].route_offset_in_meters
            else:
                next_offset = total_length
            distance = max(next_offset - instruction.route_offset_in_meters, 0.0)

            polyline_index = instruction.point_index
            if polyline_index is not None and polyline_index >= len(polyline):
                polyline_index = None
            if instruction.point is not None:
                location = Coordinate(lat=instruction.point.latitude, lng=instruction.point.longitude)
            elif polyline_index is not None:
                location = polyline[polyline_index]
            else:
                location = polyline[0]

            maneuver_type, modifier = TOMTOM_MANEUVERS.get(instruction.maneuver.upper(), ("turn", None))
            steps.append(RouteStep(
                index=i,
                instruction_text=instruction.message,
                distance_meters=distance,
                maneuver_type=maneuver_type,
                maneuver_modifier=modifier,
                location=location,
                road_name=instruction.street,
                polyline_index=polyline_index,
            ))
        return steps
