"""
TomTom 路径规划API（备用路径服务）

API文档: https://developer.tomtom.com/routing-api/documentation/routing/calculate-route
坐标顺序为 纬度,经度。
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from roadwatch.core.exceptions import ProviderConfigError
from roadwatch.infra.clients.http import request_json
from roadwatch.infra.settings import ProviderSettings, get_provider_settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def get_tomtom_key(settings: ProviderSettings) -> str:
    key = settings.tomtom_api_key
    if not key:
        raise ProviderConfigError(message="缺少 TOMTOM_API_KEY 配置，请在 config/private.yaml 中配置")
    return key


async def tomtom_calculate_route_async(
    origin_lat: float,
    origin_lng: float,
    dest_lat: float,
    dest_lng: float,
    route_type: str = "fastest",
    traffic: bool = True,
    avoid_tolls: bool = False,
    max_alternatives: int = 0,
    *,
    settings: Optional[ProviderSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """
    TomTom 驾车路径规划

    Args:
        route_type: fastest/shortest/eco/thrilling
        traffic: 是否考虑实时路况
        avoid_tolls: 是否避开收费路段
        max_alternatives: 备选路线数量（0-5）

    Returns:
        原始响应JSON：routes[].summary / legs[].points / guidance.instructions
    """
    settings = settings or get_provider_settings()
    locations = f"{origin_lat:.6f},{origin_lng:.6f}:{dest_lat:.6f},{dest_lng:.6f}"
    url = f"{settings.tomtom_base_url}/routing/1/calculateRoute/{locations}/json"

    params: Dict[str, Any] = {
        "key": get_tomtom_key(settings),
        "routeType": route_type,
        "traffic": "true" if traffic else "false",
        "language": settings.language,
        "instructionsType": "text",
        "computeBestOrder": "false",
    }
    if avoid_tolls:
        params["avoid"] = "tollRoads"
    if max_alternatives > 0:
        params["maxAlternatives"] = str(min(max_alternatives, 5))

    logger.info(
        "调用TomTom路径规划",
        extra={
            "origin": f"{origin_lat},{origin_lng}",
            "destination": f"{dest_lat},{dest_lng}",
            "route_type": route_type,
        }
    )

    data = await request_json(
        "GET", url,
        provider="tomtom",
        timeout=timeout,
        params=params,
        client=client,
    )

    logger.info(
        "TomTom路径规划完成",
        extra={"routes_count": len(data.get("routes") or []) if isinstance(data, dict) else 0},
    )
    return data
