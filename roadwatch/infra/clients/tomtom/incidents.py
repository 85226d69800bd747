"""
TomTom 交通事件API

按范围查询事故、施工等交通事件，位置取几何的第一个坐标。
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from roadwatch.core.exceptions import ProviderParseError
from roadwatch.infra.clients.http import request_json
from roadwatch.infra.settings import ProviderSettings, get_provider_settings
from .routing import get_tomtom_key

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

INCIDENT_FIELDS = (
    "{incidents{type,geometry{type,coordinates},"
    "properties{id,iconCategory,magnitudeOfDelay,events{description,code},startTime,endTime}}}"
)


def _first_lat_lng(geometry: Dict[str, Any]) -> Optional[tuple[float, float]]:
    """取事件几何第一个点，[lng, lat] 翻转为 (lat, lng)"""
    coords = geometry.get("coordinates") or []
    if geometry.get("type") == "Point" and len(coords) >= 2:
        lng, lat = coords[0], coords[1]
    elif geometry.get("type") == "LineString" and coords and len(coords[0]) >= 2:
        lng, lat = coords[0][0], coords[0][1]
    else:
        return None
    return float(lat), float(lng)


def _parse_incidents(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        raise ProviderParseError(details="incident response is not an object")

    incidents: List[Dict[str, Any]] = []
    for incident in data.get("incidents") or []:
        props = incident.get("properties") or {}
        location = _first_lat_lng(incident.get("geometry") or {})
        if location is None:
            continue
        lat, lng = location
        events = props.get("events") or []
        incidents.append({
            "id": str(props.get("id") or incident.get("id") or f"{lat}-{lng}"),
            "lat": lat,
            "lng": lng,
            "type": str(props.get("iconCategory", "unknown")),
            "description": events[0].get("description", "Incident") if events else "Incident",
            "severity": int(props.get("magnitudeOfDelay") or 0),
            "start_time": props.get("startTime"),
            "end_time": props.get("endTime"),
        })
    return incidents


async def tomtom_traffic_incidents_async(
    min_lat: float,
    min_lng: float,
    max_lat: float,
    max_lng: float,
    *,
    settings: Optional[ProviderSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[Dict[str, Any]]:
    """查询范围内交通事件（bbox 参数顺序为 minLng,minLat,maxLng,maxLat）"""
    settings = settings or get_provider_settings()
    url = f"{settings.tomtom_base_url}/traffic/services/5/incidentDetails"
    params = {
        "key": get_tomtom_key(settings),
        "bbox": f"{min_lng},{min_lat},{max_lng},{max_lat}",
        "fields": INCIDENT_FIELDS,
        "language": settings.language,
    }

    data = await request_json(
        "GET", url,
        provider="tomtom-incidents",
        timeout=timeout,
        params=params,
        client=client,
    )
    incidents = _parse_incidents(data)
    logger.info(f"交通事件查询完成: {len(incidents)} 条")
    return incidents
