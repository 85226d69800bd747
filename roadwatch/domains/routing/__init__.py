"""路线获取模块"""

from .schemas import Coordinate, Route, RouteStep, RoutePreference, ProgressResult
from .coordinator import RouteRequestCoordinator, build_cache_key
from .providers import RoutingProvider, OpenRouteServiceProvider, TomTomProvider
from .service import RouteAcquisitionService
from .geocoding import GeocodingService

__all__ = [
    # 数据模型
    "Coordinate",
    "Route",
    "RouteStep",
    "RoutePreference",
    "ProgressResult",
    # 请求协调
    "RouteRequestCoordinator",
    "build_cache_key",
    # 路径服务
    "RoutingProvider",
    "OpenRouteServiceProvider",
    "TomTomProvider",
    "RouteAcquisitionService",
    "GeocodingService",
]
