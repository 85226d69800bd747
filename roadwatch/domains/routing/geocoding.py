"""
地理编码服务

在 Nominatim 客户端之上加一层 FIFO/TTL 缓存（5分钟，最多100条），
键为 查询文本 + 用户位置（保留2位小数）。
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional

import httpx

from roadwatch.infra.clients.nominatim import nominatim_search_async
from roadwatch.infra.settings import ProviderSettings
from .cache import FifoTtlCache
from .schemas import Coordinate, GeocodeResult

logger = logging.getLogger(__name__)

GEOCODE_CACHE_TTL_S = 300.0
GEOCODE_CACHE_MAX_ENTRIES = 100
MIN_QUERY_LENGTH = 2


class GeocodingService:
    """地址搜索服务"""

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        ttl_seconds: float = GEOCODE_CACHE_TTL_S,
        max_entries: int = GEOCODE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        search: Callable[..., Awaitable[list[dict]]] = nominatim_search_async,
    ) -> None:
        self._settings = settings
        self._client = client
        self._timeout = timeout
        self._search = search
        self._cache: FifoTtlCache[list[GeocodeResult]] = FifoTtlCache(ttl_seconds, max_entries, clock=clock)

    @staticmethod
    def _cache_key(query: str, near: Optional[Coordinate]) -> str:
        if near is None:
            return query.lower()
        return f"{query.lower()}|{near.lat:.2f},{near.lng:.2f}"

    async def search(self, query: str, near: Optional[Coordinate] = None) -> list[GeocodeResult]:
        """
        搜索地址

        Args:
            query: 搜索文本
            near: 用户当前位置（可选），优先返回周边结果

        Returns:
            按相关度排序的结果，失败或无结果时为空列表
        """
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        key = self._cache_key(query, near)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"地理编码缓存命中: {query}")
            return list(cached)

        raw = await self._search(
            query,
            near.lat if near else None,
            near.lng if near else None,
            settings=self._settings,
            client=self._client,
            timeout=self._timeout,
        )
        results = [GeocodeResult(**item) for item in raw]
        if results:
            self._cache.set(key, results)
        return results
