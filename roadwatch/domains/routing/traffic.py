"""
交通修正

路线耗时 = 基准耗时 × 交通系数，系数范围 [1.0, 2.5]。
有实时流量数据时用实时系数，否则按时段经验值，每次只用其中一种。
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import httpx
from pydantic import ValidationError

from roadwatch.core.exceptions import ProviderParseError
from roadwatch.infra.clients.tomtom import tomtom_traffic_flow_async
from roadwatch.infra.settings import ProviderSettings
from .schemas import Coordinate, Route, TrafficAdjustment, TrafficFlowSample

logger = logging.getLogger(__name__)

MIN_MULTIPLIER = 1.0
MAX_MULTIPLIER = 2.5
# 当前车速下限（km/h），避免拥堵时系数被极小车速放大
MIN_CURRENT_SPEED_KMH = 10.0

RUSH_HOUR_MULTIPLIER = 1.3
DAYTIME_MULTIPLIER = 1.1


def live_multiplier(sample: TrafficFlowSample) -> float:
    """自由流车速 / max(当前车速, 10)，截断到 [1.0, 2.5]"""
    ratio = sample.free_flow_speed_kmh / max(sample.current_speed_kmh, MIN_CURRENT_SPEED_KMH)
    return min(max(ratio, MIN_MULTIPLIER), MAX_MULTIPLIER)


def time_of_day_multiplier(moment: datetime) -> float:
    """
    时段经验系数（按整点小时判断，含首尾）

    - 7-9点、17-19点: 1.3
    - 10-16点: 1.1
    - 其他: 1.0
    """
    hour = moment.hour
    if 7 <= hour <= 9 or 17 <= hour <= 19:
        return RUSH_HOUR_MULTIPLIER
    if 10 <= hour <= 16:
        return DAYTIME_MULTIPLIER
    return MIN_MULTIPLIER


def compute_adjustment(sample: Optional[TrafficFlowSample], moment: datetime) -> TrafficAdjustment:
    if sample is not None:
        return TrafficAdjustment(multiplier=live_multiplier(sample), source="live")
    return TrafficAdjustment(multiplier=time_of_day_multiplier(moment), source="time_of_day")


def apply_adjustment(route: Route, adjustment: TrafficAdjustment) -> Route:
    """返回应用交通系数后的新路线（原路线不可变）"""
    return route.model_copy(update={
        "adjusted_duration_seconds": route.duration_seconds * adjustment.multiplier,
        "traffic_multiplier": adjustment.multiplier,
        "has_live_traffic_data": adjustment.source == "live",
    })


class TomTomFlowLookup:
    """按点查询 TomTom 实时流量，供路线获取服务使用"""

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ) -> None:
        self._settings = settings
        self._client = client
        self._timeout = timeout

    async def __call__(self, position: Coordinate) -> Optional[TrafficFlowSample]:
        data = await tomtom_traffic_flow_async(
            position.lat, position.lng,
            settings=self._settings,
            client=self._client,
            timeout=self._timeout,
        )
        if data is None:
            return None
        try:
            return TrafficFlowSample(**data)
        except ValidationError as e:
            raise ProviderParseError(details=f"tomtom-flow: {e.errors()[0]['msg']}") from e
