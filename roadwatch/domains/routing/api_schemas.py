"""
路线接口请求/响应模型

坐标不在这里做范围校验，交给路线获取服务统一返回 INVALID_INPUT。
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from roadwatch.domains.hazards.schemas import TrafficIncident
from .schemas import GeocodeResult, Route, TrafficFlowSample


class LatLng(BaseModel):
    lat: float = Field(..., description="纬度")
    lng: float = Field(..., description="经度")


class RoutePlanRequest(BaseModel):
    """路线规划请求"""
    origin: LatLng
    destination: LatLng
    preference: str = Field("fastest", description="fastest/shortest/scenic/avoid_tolls/balanced")
    provider: str = Field("primary", description="primary/secondary")
    traffic: bool = Field(True, description="是否进行交通修正")
    alternatives: bool = Field(True, description="是否返回备选路线")


class RoutePlanResponse(BaseModel):
    routes: list[Route]
    count: int


class RerouteRequest(BaseModel):
    """改道请求：以当前位置为起点，不走缓存"""
    position: LatLng
    destination: LatLng
    preference: str = "fastest"
    provider: str = "primary"


class RerouteResponse(BaseModel):
    route: Route


class GeocodeResponse(BaseModel):
    results: list[GeocodeResult]


class TrafficFlowResponse(BaseModel):
    flow: Optional[TrafficFlowSample] = None
    cached: bool = False


class TrafficIncidentsResponse(BaseModel):
    incidents: list[TrafficIncident]
    cached: bool = False
