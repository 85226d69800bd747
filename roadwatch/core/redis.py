"""
Redis客户端模块

仅用于 /traffic 与 /routing/geocode 接口的响应缓存。
redis_url 为空时不创建连接，接口直接透传到外部服务。
"""
from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[Redis] = None


async def get_redis_client(url: Optional[str] = None) -> Optional[Redis]:
    """
    获取响应缓存使用的Redis客户端

    Args:
        url: 连接地址，缺省取 settings.redis_url

    Returns:
        Redis异步客户端；未配置地址时返回None
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    url = settings.redis_url if url is None else url
    if not url:
        logger.info("未配置Redis地址，接口响应缓存关闭")
        return None

    # 缓存是可选加速，超时要短，避免拖慢导航接口
    _redis_client = redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.redis_timeout_s,
        socket_timeout=settings.redis_timeout_s,
    )
    logger.info("响应缓存Redis已就绪", extra={"redis_url": url})
    return _redis_client


async def ping_cache(client: Optional[Redis]) -> str:
    """返回响应缓存状态: disabled / ok / unavailable"""
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("响应缓存Redis不可达", extra={"error": str(e)})
        return "unavailable"
    return "ok"


async def close_redis_client() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("响应缓存Redis连接已关闭")


__all__ = [
    "get_redis_client",
    "ping_cache",
    "close_redis_client",
    "RedisError",
]
