"""
OpenRouteService 驾车路径规划API

API文档: https://openrouteservice.org/dev/#/api-docs/v2/directions
使用 geojson 端点，坐标顺序为 经度,纬度，返回的几何坐标同样是 [lng, lat]。
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

# 备选路线参数
ALTERNATIVE_TARGET_COUNT = 2
ALTERNATIVE_WEIGHT_FACTOR = 1.4


def _get_ors_key(settings: ProviderSettings) -> str:
    key = settings.ors_api_key
    if not key:
        raise ProviderConfigError(message="缺少 ORS_API_KEY 配置，请在 config/private.yaml 中配置")
    return key


def _build_payload(
    origin_lon: float,
    origin_lat: float,
    dest_lon: float,
    dest_lat: float,
    preference: str,
    avoid_tolls: bool,
    alternatives: bool,
    language: str,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "coordinates": [[origin_lon, origin_lat], [dest_lon, dest_lat]],
        "elevation": False,
        "instructions": True,
        "preference": preference,
        "language": language.split("-")[0],
    }
    if avoid_tolls:
        payload["options"] = {"avoid_features": ["tollways"]}
    if alternatives:
        payload["alternative_routes"] = {
            "target_count": ALTERNATIVE_TARGET_COUNT,
            "weight_factor": ALTERNATIVE_WEIGHT_FACTOR,
        }
    return payload


async def ors_directions_async(
    origin_lon: float,
    origin_lat: float,
    dest_lon: float,
    dest_lat: float,
    preference: str = "fastest",
    avoid_tolls: bool = False,
    alternatives: bool = False,
    *,
    settings: Optional[ProviderSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """
    OpenRouteService 驾车路径规划

    Args:
        origin_lon: 起点经度
        origin_lat: 起点纬度
        dest_lon: 终点经度
        dest_lat: 终点纬度
        preference: 算路策略 fastest/shortest/recommended
        avoid_tolls: 是否避开收费路段
        alternatives: 是否请求备选路线（最多2条）

    Returns:
        原始 FeatureCollection，features[] 中 geometry.coordinates 为 [lng, lat]
    """
    settings = settings or get_provider_settings()
    headers = {
        "Authorization": _get_ors_key(settings),
        "Content-Type": "application/json",
    }
    url = f"{settings.ors_base_url}/v2/directions/{settings.ors_profile}/geojson"
    payload = _build_payload(
        origin_lon, origin_lat, dest_lon, dest_lat,
        preference, avoid_tolls, alternatives, settings.language,
    )

    logger.info(
        "调用ORS路径规划",
        extra={
            "origin": f"{origin_lon},{origin_lat}",
            "destination": f"{dest_lon},{dest_lat}",
            "preference": preference,
            "alternatives": alternatives,
        }
    )

    data = await request_json(
        "POST", url,
        provider="openrouteservice",
        timeout=timeout,
        json_body=payload,
        headers=headers,
        client=client,
    )

    logger.info(
        "ORS路径规划完成",
        extra={"routes_count": len(data.get("features") or []) if isinstance(data, dict) else 0},
    )
    return data
