"""
TomTom API客户端

提供路径规划（备用路径服务）、交通流量与交通事件查询。
"""
from .routing import tomtom_calculate_route_async
from .traffic_flow import tomtom_traffic_flow_async
from .incidents import tomtom_traffic_incidents_async

__all__ = [
    "tomtom_calculate_route_async",
    "tomtom_traffic_flow_async",
    "tomtom_traffic_incidents_async",
]
