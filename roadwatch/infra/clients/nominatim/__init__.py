"""
Nominatim 地理编码客户端

提供地址/地名搜索。
"""
from .geocode import nominatim_search_async

__all__ = [
    "nominatim_search_async",
]
