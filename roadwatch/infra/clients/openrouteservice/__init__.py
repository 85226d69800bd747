"""
OpenRouteService API客户端

提供驾车路径规划服务（主路径服务）。
"""
from .directions import ors_directions_async

__all__ = [
    "ors_directions_async",
]
