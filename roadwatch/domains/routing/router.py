"""
路线与路况 HTTP 接口

- /routing/plan: 路线规划（进程内协调器：缓存、单飞、节流、429退避）
- /routing/reroute: 偏离改道（不走缓存）
- /routing/geocode: 地址搜索
- /traffic/flow, /traffic/incidents: 实时路况，Redis 按接口缓存

协调器、服务与共享 httpx 客户端在应用启动时创建，挂在 app.state 上。
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from roadwatch.core.config import settings
from roadwatch.domains.hazards.schemas import TrafficIncident
from roadwatch.infra.clients.tomtom import tomtom_traffic_incidents_async
from roadwatch.infra.response_memo import ResponseMemo
from .api_schemas import (
    GeocodeResponse,
    RerouteRequest,
    RerouteResponse,
    RoutePlanRequest,
    RoutePlanResponse,
    TrafficFlowResponse,
    TrafficIncidentsResponse,
)
from .coordinator import RouteRequestCoordinator
from .geocoding import GeocodingService
from .schemas import Coordinate, RoutePreference, TrafficFlowSample
from .service import RouteAcquisitionService, coerce_coordinate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routing", tags=["routing"])
traffic_router = APIRouter(prefix="/traffic", tags=["traffic"])


def get_coordinator(request: Request) -> RouteRequestCoordinator:
    """依赖注入：进程内唯一的路线请求协调器"""
    return request.app.state.coordinator


def get_acquisition(request: Request) -> RouteAcquisitionService:
    return request.app.state.acquisition


def get_geocoding(request: Request) -> GeocodingService:
    return request.app.state.geocoding


def _memo(request: Request, namespace: str, ttl: int) -> ResponseMemo:
    return ResponseMemo(getattr(request.app.state, "redis", None), namespace, ttl)


@router.post("/plan", response_model=RoutePlanResponse)
async def plan_route(
    body: RoutePlanRequest,
    coordinator: RouteRequestCoordinator = Depends(get_coordinator),
    acquisition: RouteAcquisitionService = Depends(get_acquisition),
) -> RoutePlanResponse:
    """
    路线规划

    相同起终点（4位小数）与偏好在3分钟内直接返回缓存；
    429 退避期间返回 429 并带 Retry-After。
    """
    origin = coerce_coordinate(body.origin.model_dump(), "origin")
    destination = coerce_coordinate(body.destination.model_dump(), "destination")
    preference = RoutePreference.parse(body.preference)
    logger.info(f"路线规划请求: {preference.value}, provider={body.provider}")

    routes = await coordinator.execute(
        origin,
        destination,
        preference,
        acquisition.loader_for(
            origin, destination, preference,
            traffic_requested=body.traffic,
            provider=body.provider,
            alternatives=body.alternatives,
        ),
    )
    return RoutePlanResponse(routes=routes, count=len(routes))


@router.post("/reroute", response_model=RerouteResponse)
async def reroute(
    body: RerouteRequest,
    coordinator: RouteRequestCoordinator = Depends(get_coordinator),
    acquisition: RouteAcquisitionService = Depends(get_acquisition),
) -> RerouteResponse:
    """从当前位置重新规划到原终点，只返回主路线"""
    position = coerce_coordinate(body.position.model_dump(), "position")
    destination = coerce_coordinate(body.destination.model_dump(), "destination")
    preference = RoutePreference.parse(body.preference)

    routes = await coordinator.execute(
        position,
        destination,
        preference,
        acquisition.loader_for(
            position, destination, preference,
            traffic_requested=True,
            provider=body.provider,
        ),
        use_cache=False,
    )
    return RerouteResponse(route=routes[0])


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode(
    q: str = Query(..., description="搜索文本"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    geocoding: GeocodingService = Depends(get_geocoding),
) -> GeocodeResponse:
    near = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None
    results = await geocoding.search(q, near)
    return GeocodeResponse(results=results)


@traffic_router.get("/flow", response_model=TrafficFlowResponse)
async def traffic_flow(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
) -> TrafficFlowResponse:
    """单点实时车速，缓存60秒"""
    memo = _memo(request, "traffic_flow", settings.flow_memo_ttl_s)
    flow_lookup = request.app.state.flow_lookup

    async def load() -> Optional[dict]:
        sample = await flow_lookup(Coordinate(lat=lat, lng=lng))
        return sample.model_dump() if sample is not None else None

    data, hit = await memo.get_or_load(memo.build_key(f"{lat:.4f}", f"{lng:.4f}"), load)
    flow = TrafficFlowSample(**data) if data else None
    return TrafficFlowResponse(flow=flow, cached=hit)


@traffic_router.get("/incidents", response_model=TrafficIncidentsResponse)
async def traffic_incidents(
    request: Request,
    min_lat: float = Query(..., ge=-90, le=90),
    min_lng: float = Query(..., ge=-180, le=180),
    max_lat: float = Query(..., ge=-90, le=90),
    max_lng: float = Query(..., ge=-180, le=180),
) -> TrafficIncidentsResponse:
    """范围内交通事件，缓存60秒"""
    memo = _memo(request, "traffic_incidents", settings.incident_memo_ttl_s)
    key = memo.build_key(f"{min_lat:.3f}", f"{min_lng:.3f}", f"{max_lat:.3f}", f"{max_lng:.3f}")

    async def load() -> list[dict]:
        return await tomtom_traffic_incidents_async(
            min_lat, min_lng, max_lat, max_lng,
            settings=request.app.state.provider_settings,
            client=request.app.state.http_client,
            timeout=settings.incident_timeout_s,
        )

    data, hit = await memo.get_or_load(key, load)
    return TrafficIncidentsResponse(
        incidents=[TrafficIncident(**item) for item in data],
        cached=hit,
    )
