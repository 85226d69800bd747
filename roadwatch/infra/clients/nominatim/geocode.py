"""
Nominatim 地理编码API

提供地址/地名搜索，结果按相关度排序。
使用条款要求携带可识别的 User-Agent。
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from roadwatch.core.exceptions import RoutingError
from roadwatch.infra.clients.http import request_json
from roadwatch.infra.settings import ProviderSettings, get_provider_settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
RESULT_LIMIT = 10
# 用户位置周边搜索框半径（度）
VIEWBOX_DEGREES = 1.0


def _to_result(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        lat = float(item["lat"])
        lng = float(item["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    display_name = item.get("display_name") or ""
    return {
        "label": display_name,
        "address": display_name,
        "lat": lat,
        "lng": lng,
        "type": item.get("type"),
    }


async def nominatim_search_async(
    query: str,
    near_lat: Optional[float] = None,
    near_lng: Optional[float] = None,
    *,
    settings: Optional[ProviderSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[Dict[str, Any]]:
    """
    地址搜索（异步）

    Args:
        query: 搜索文本，少于2个字符直接返回空列表
        near_lat/near_lng: 用户位置，提供时优先搜索周边 ±1° 范围

    Returns:
        [{"label", "address", "lat", "lng", "type"}, ...]，失败返回空列表
    """
    query = (query or "").strip()
    if len(query) < 2:
        return []

    settings = settings or get_provider_settings()
    url = f"{settings.nominatim_base_url}/search"
    headers = {"User-Agent": settings.nominatim_user_agent}
    base_params: Dict[str, Any] = {
        "q": query,
        "format": "json",
        "addressdetails": "1",
        "limit": str(RESULT_LIMIT),
        "countrycodes": settings.geocode_country_codes,
    }

    attempts: List[Dict[str, Any]] = []
    if near_lat is not None and near_lng is not None:
        viewbox = (
            f"{near_lng - VIEWBOX_DEGREES},{near_lat + VIEWBOX_DEGREES},"
            f"{near_lng + VIEWBOX_DEGREES},{near_lat - VIEWBOX_DEGREES}"
        )
        attempts.append({**base_params, "viewbox": viewbox, "bounded": "0"})
    attempts.append(base_params)

    try:
        for params in attempts:
            data = await request_json(
                "GET", url,
                provider="nominatim",
                timeout=timeout,
                params=params,
                headers=headers,
                client=client,
            )
            items = data if isinstance(data, list) else []
            results = [r for r in (_to_result(item) for item in items) if r is not None]
            if results:
                logger.info(f"地理编码成功: {query} -> {len(results)} 条")
                return results
    except RoutingError as e:
        logger.error(f"地理编码异常: {query}, error={e.error_code}")
        return []

    logger.warning(f"地理编码无结果: {query}")
    return []
