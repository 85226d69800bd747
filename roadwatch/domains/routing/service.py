"""
路线获取服务

把 (起点, 终点, 偏好, 是否需要路况) 转换为标准化路线列表：
1. 校验坐标，偏好无法识别时回退为 fastest
2. 调用调用方选定的一个路径服务（主/备），不做内部重试
3. 按实时流量或时段经验值修正耗时

429 以 RateLimitedError 原样上抛，重试策略由协调器/调用方决定。
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import ValidationError

from roadwatch.core.exceptions import InvalidInputError, NoRouteFoundError, RoutingError
from .coordinator import RouteLoader
from .geodesy import midpoint
from .providers import RoutingProvider
from .schemas import Coordinate, Route, RoutePreference, TrafficFlowSample
from .traffic import apply_adjustment, compute_adjustment

logger = logging.getLogger(__name__)

FlowLookup = Callable[[Coordinate], Awaitable[Optional[TrafficFlowSample]]]

PRIMARY = "primary"
SECONDARY = "secondary"


def coerce_coordinate(value: Any, field: str = "coordinate") -> Coordinate:
    """
    把 Coordinate / (lat, lng) / {"lat", "lng"} 转为 Coordinate

    Raises:
        InvalidInputError: 缺失、非数值或超出经纬度范围
    """
    if isinstance(value, Coordinate):
        coordinate = value
    else:
        try:
            if isinstance(value, Mapping):
                coordinate = Coordinate(lat=value.get("lat"), lng=value.get("lng"))
            elif isinstance(value, (tuple, list)) and len(value) == 2:
                coordinate = Coordinate(lat=value[0], lng=value[1])
            else:
                raise InvalidInputError(details=f"{field}: unsupported value {value!r}")
        except ValidationError as e:
            raise InvalidInputError(details=f"{field}: {e.errors()[0]['msg']}") from e

    if not coordinate.is_valid():
        raise InvalidInputError(details=f"{field}: out of range")
    return coordinate


class RouteAcquisitionService:
    """
    路线获取服务

    Attributes:
        _providers: 名称 -> 适配器，"primary"/"secondary" 为别名
        _flow_lookup: 实时流量查询（可选）
        _now: 当前本地时间，时段经验值使用
    """

    def __init__(
        self,
        primary: RoutingProvider,
        secondary: Optional[RoutingProvider] = None,
        flow_lookup: Optional[FlowLookup] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._providers: dict[str, RoutingProvider] = {PRIMARY: primary, primary.name: primary}
        if secondary is not None:
            self._providers[SECONDARY] = secondary
            self._providers[secondary.name] = secondary
        self._flow_lookup = flow_lookup
        self._now = now

    def _select_provider(self, provider: str) -> RoutingProvider:
        selected = self._providers.get(provider)
        if selected is None:
            raise InvalidInputError(details=f"unknown routing provider: {provider}")
        return selected

    async def acquire(
        self,
        origin: Any,
        destination: Any,
        preference: RoutePreference | str = RoutePreference.FASTEST,
        *,
        traffic_requested: bool = False,
        provider: str = PRIMARY,
        alternatives: bool = False,
    ) -> list[Route]:
        """
        获取标准化路线

        Args:
            origin: 起点
            destination: 终点
            preference: 路线偏好
            traffic_requested: 是否进行交通修正
            provider: primary/secondary 或服务名
            alternatives: 是否请求备选路线

        Returns:
            路线列表，第一条为主路线

        Raises:
            InvalidInputError / RateLimitedError / NoRouteFoundError /
            ProviderParseError / ProviderTimeoutError / ProviderNetworkError
        """
        origin = coerce_coordinate(origin, "origin")
        destination = coerce_coordinate(destination, "destination")
        preference = RoutePreference.parse(preference)
        routing_provider = self._select_provider(provider)

        logger.info(
            f"获取路线: ({origin.lat},{origin.lng}) → ({destination.lat},{destination.lng})",
            extra={"preference": preference.value, "provider": routing_provider.name},
        )

        routes = await routing_provider.fetch_routes(
            origin, destination, preference, alternatives=alternatives,
        )
        if not routes:
            raise NoRouteFoundError(details=f"{routing_provider.name} returned no routes")

        if not traffic_requested:
            return routes

        adjusted = []
        for route in routes:
            sample = await self._lookup_flow(route)
            adjustment = compute_adjustment(sample, self._now())
            adjusted.append(apply_adjustment(route, adjustment))
        logger.info(
            f"交通修正完成: {len(adjusted)} 条路线",
            extra={"multipliers": [r.traffic_multiplier for r in adjusted]},
        )
        return adjusted

    async def _lookup_flow(self, route: Route) -> Optional[TrafficFlowSample]:
        """查询路线中点流量，失败时记录日志并返回 None（回退时段经验值）"""
        if self._flow_lookup is None or not route.polyline:
            return None
        try:
            return await self._flow_lookup(midpoint(route.polyline))
        except RoutingError as e:
            logger.warning(f"交通流量查询失败，使用时段经验值: {e.error_code}")
            return None

    def loader_for(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference | str,
        **options: Any,
    ) -> RouteLoader:
        """生成给 RouteRequestCoordinator.execute 使用的加载函数"""

        async def load() -> list[Route]:
            return await self.acquire(origin, destination, preference, **options)

        return load
