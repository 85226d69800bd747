"""
服务端接口响应缓存

按接口设置不同过期时间（60-300秒），Redis 不可用时直接透传，不影响主流程。
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class ResponseMemo:
    """
    单个接口的响应缓存

    Attributes:
        _cache: Redis客户端（可选，为None则不缓存）
        _namespace: 缓存键前缀，如 "traffic_flow"
        _ttl: 缓存过期时间（秒）
    """

    CACHE_PREFIX = "roadwatch"

    def __init__(self, cache: Optional[Redis], namespace: str, ttl: int) -> None:
        self._cache = cache
        self._namespace = namespace
        self._ttl = ttl

    def build_key(self, *parts: Any) -> str:
        return ":".join([self.CACHE_PREFIX, self._namespace, *(str(p) for p in parts)])

    async def get(self, key: str) -> Optional[Any]:
        if self._cache is None:
            return None
        try:
            cached = await self._cache.get(key)
        except RedisError as e:
            logger.warning(f"[ResponseMemo] 缓存读取失败: {e}")
            return None
        if not cached:
            return None
        logger.debug(f"[ResponseMemo] 缓存命中: {key}")
        return json.loads(cached)

    async def set(self, key: str, value: Any) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.setex(key, self._ttl, json.dumps(value))
            logger.debug(f"[ResponseMemo] 缓存写入: {key}")
        except RedisError as e:
            logger.warning(f"[ResponseMemo] 缓存写入失败: {e}")

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> tuple[Any, bool]:
        """
        读取缓存，未命中时调用 loader 并写入

        Returns:
            (数据, 是否命中缓存)；loader 的异常原样抛出且不写缓存
        """
        cached = await self.get(key)
        if cached is not None:
            return cached, True
        value = await loader()
        await self.set(key, value)
        return value, False
