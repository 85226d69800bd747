"""
TomTom 交通流量API

单点查询当前车速与自由流车速，用于路线耗时修正。
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from roadwatch.core.exceptions import ProviderParseError
from roadwatch.infra.clients.http import request_json
from roadwatch.infra.settings import ProviderSettings, get_provider_settings
from .routing import get_tomtom_key

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
FLOW_ZOOM = 10


def _parse_flow_response(data: Any) -> Optional[Dict[str, Any]]:
    """解析 flowSegmentData，无数据时返回 None"""
    if not isinstance(data, dict):
        raise ProviderParseError(details="traffic flow response is not an object")
    flow = data.get("flowSegmentData")
    if not flow:
        return None
    try:
        current_speed = float(flow["currentSpeed"])
        free_flow_speed = float(flow.get("freeFlowSpeed") or 0)
    except (KeyError, TypeError, ValueError) as e:
        raise ProviderParseError(details=f"traffic flow missing speeds: {e}") from e
    return {
        "current_speed_kmh": current_speed,
        "free_flow_speed_kmh": free_flow_speed,
        "confidence": float(flow.get("confidence", 0.5)),
        "road_closure": bool(flow.get("roadClosure", False)),
    }


async def tomtom_traffic_flow_async(
    lat: float,
    lng: float,
    *,
    settings: Optional[ProviderSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Optional[Dict[str, Any]]:
    """
    查询单点交通流量

    Returns:
        {"current_speed_kmh", "free_flow_speed_kmh", "confidence", "road_closure"} 或 None
    """
    settings = settings or get_provider_settings()
    url = f"{settings.tomtom_base_url}/traffic/services/4/flowSegmentData/absolute/{FLOW_ZOOM}/json"
    params = {
        "key": get_tomtom_key(settings),
        "point": f"{lat:.6f},{lng:.6f}",
        "unit": "KMPH",
    }

    data = await request_json(
        "GET", url,
        provider="tomtom-flow",
        timeout=timeout,
        params=params,
        client=client,
    )
    result = _parse_flow_response(data)
    logger.debug(f"交通流量查询: ({lat},{lng}) -> {result}")
    return result
