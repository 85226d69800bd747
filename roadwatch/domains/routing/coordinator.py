"""
路线请求协调器

进程内唯一的路线请求管理者，负责：
- 路线缓存（3分钟过期，最多50条，FIFO淘汰）
- 单飞控制：同一时刻最多一个路线网络请求
- 最小请求间隔（1.2秒，缓存命中不计）
- 429限流退避：2s → 5s → 15s → 15s...，任意一次成功后清零
- 改道节流：两次改道尝试间隔不少于10秒

门控方法（get_cached / can_make_request / start_request ...）只改内部状态、不做IO、不抛异常；
execute() 是在门控方法之上的异步封装，负责真正调度加载函数。
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional, Sequence

from roadwatch.core.config import Settings
from roadwatch.core.exceptions import RateLimitedError
from .cache import FifoTtlCache
from .schemas import (
    BackoffNotice,
    BackoffState,
    CacheEntry,
    Coordinate,
    RequestPermit,
    Route,
    RoutePreference,
)

logger = logging.getLogger(__name__)

RouteLoader = Callable[[], Awaitable[list[Route]]]


def build_cache_key(origin: Coordinate, destination: Coordinate, preference: RoutePreference | str) -> str:
    """起终点保留4位小数（约11米）+ 偏好 组成缓存键"""
    pref = RoutePreference.parse(preference).value
    # +0.0 把 -0.0 归一成 0.0，赤道/本初子午线附近的键才一致
    parts = [round(v, 4) + 0.0 for v in (origin.lat, origin.lng, destination.lat, destination.lng)]
    return f"{parts[0]:.4f},{parts[1]:.4f}|{parts[2]:.4f},{parts[3]:.4f}|{pref}"


class RouteRequestCoordinator:
    """
    路线请求协调器

    单线程协作式调度下使用，不加锁；所有状态只在本类方法内修改。

    Attributes:
        _cache: 路线缓存
        _backoff: 429退避状态
        _in_flight: 是否有路线请求在途
        _last_request_at: 上次发起网络请求的时间
        _last_reroute_at: 上次触发改道尝试的时间
        _pending: 缓存键 -> 在途请求的 Future，相同请求共享结果
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 180.0,
        max_entries: int = 50,
        min_interval_seconds: float = 1.2,
        backoff_tiers: Sequence[float] = (2.0, 5.0, 15.0),
        reroute_throttle_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not backoff_tiers:
            raise ValueError("backoff_tiers 不能为空")
        self._clock = clock
        self._sleep = sleep
        self._cache: FifoTtlCache[CacheEntry] = FifoTtlCache(ttl_seconds, max_entries, clock=clock)
        self._min_interval = min_interval_seconds
        self._backoff_tiers = tuple(backoff_tiers)
        self._reroute_throttle = reroute_throttle_seconds

        self._backoff = BackoffState()
        self._in_flight = False
        self._last_request_at = float("-inf")
        self._last_reroute_at = float("-inf")
        self._pending: dict[str, asyncio.Future[list[Route]]] = {}
        self._idle_waiters: list[asyncio.Future[None]] = []

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "RouteRequestCoordinator":
        kwargs = dict(
            ttl_seconds=settings.route_cache_ttl_s,
            max_entries=settings.route_cache_max_entries,
            min_interval_seconds=settings.min_request_interval_s,
            backoff_tiers=settings.backoff_tiers_s,
            reroute_throttle_seconds=settings.reroute_throttle_s,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    # ------------------------------------------------------------------
    # 缓存
    # ------------------------------------------------------------------

    def get_cached(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference | str,
    ) -> Optional[list[Route]]:
        """返回未过期的缓存路线，未命中返回 None（只读）"""
        entry = self._cache.get(build_cache_key(origin, destination, preference))
        if entry is None:
            return None
        logger.debug(f"命中路线缓存: {entry.key}")
        return list(entry.routes)

    def set_cache(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference | str,
        routes: Sequence[Route],
    ) -> None:
        key = build_cache_key(origin, destination, preference)
        self._cache.set(key, CacheEntry(key=key, routes=list(routes), created_at=self._clock()))

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("路线缓存已清空")

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    # 请求许可
    # ------------------------------------------------------------------

    def can_make_request(self) -> RequestPermit:
        """
        检查是否允许发起新的路线请求（默认拒绝）

        拒绝原因依次为：已有请求在途、退避未结束、距上次请求不足最小间隔。
        """
        now = self._clock()

        if self._in_flight:
            return RequestPermit(allowed=False, reason="已有路线请求进行中")

        if now < self._backoff.backoff_until:
            wait_ms = math.ceil((self._backoff.backoff_until - now) * 1000)
            return RequestPermit(
                allowed=False,
                reason=f"请稍候... ({math.ceil(wait_ms / 1000)}s)",
                wait_ms=wait_ms,
            )

        elapsed = now - self._last_request_at
        if elapsed < self._min_interval:
            return RequestPermit(
                allowed=False,
                reason="请求节流",
                wait_ms=math.ceil((self._min_interval - elapsed) * 1000),
            )

        return RequestPermit(allowed=True)

    def start_request(self) -> None:
        self._in_flight = True
        self._last_request_at = self._clock()

    def end_request(self) -> None:
        self._in_flight = False
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ------------------------------------------------------------------
    # 429退避
    # ------------------------------------------------------------------

    def handle_rate_limited(self) -> BackoffNotice:
        """记录一次429，按次数升级退避档位，返回需要等待的秒数"""
        self._backoff.failure_count += 1
        tier_index = min(self._backoff.failure_count, len(self._backoff_tiers)) - 1
        backoff = self._backoff_tiers[tier_index]
        self._backoff.backoff_until = max(self._backoff.backoff_until, self._clock() + backoff)
        logger.warning(
            f"路径服务429限流，退避 {backoff}s",
            extra={"failure_count": self._backoff.failure_count},
        )
        return BackoffNotice(backoff_seconds=math.ceil(backoff))

    def reset_backoff(self) -> None:
        self._backoff.failure_count = 0
        self._backoff.backoff_until = 0.0

    @property
    def backoff_state(self) -> BackoffState:
        return BackoffState(
            failure_count=self._backoff.failure_count,
            backoff_until=self._backoff.backoff_until,
        )

    # ------------------------------------------------------------------
    # 改道节流
    # ------------------------------------------------------------------

    def can_reroute(self) -> bool:
        return self._clock() - self._last_reroute_at >= self._reroute_throttle

    def mark_reroute(self) -> None:
        """记录一次改道尝试（无论成功失败都计入节流）"""
        self._last_reroute_at = self._clock()

    # ------------------------------------------------------------------
    # 异步执行
    # ------------------------------------------------------------------

    async def execute(
        self,
        origin: Coordinate,
        destination: Coordinate,
        preference: RoutePreference | str,
        loader: RouteLoader,
        *,
        use_cache: bool = True,
    ) -> list[Route]:
        """
        在单飞/节流/退避约束下执行路线加载

        Args:
            loader: 真正发起网络请求的协程函数
            use_cache: False 时跳过缓存与相同请求合并（改道使用）

        发起方被取消时，共享同一请求的等待者不会收到取消，而是自行重新发起。

        Returns:
            路线列表

        Raises:
            RateLimitedError: 退避期间或本次请求被429，retry_after_seconds 为需等待秒数
            其他 RoutingError: 由 loader 原样抛出
        """
        key = build_cache_key(origin, destination, preference)

        if use_cache:
            cached = self.get_cached(origin, destination, preference)
            if cached is not None:
                return cached
            pending = self._pending.get(key)
            if pending is not None:
                logger.debug(f"合并相同的在途请求: {key}")
                try:
                    return list(await asyncio.shield(pending))
                except asyncio.CancelledError:
                    if not pending.cancelled():
                        raise
                # 发起方被取消，等待者用自己的 loader 重新发起
                logger.info(f"共享请求被取消，重新发起: {key}")
                return await self.execute(origin, destination, preference, loader, use_cache=use_cache)

        future: asyncio.Future[list[Route]] = asyncio.get_running_loop().create_future()
        if use_cache:
            self._pending[key] = future
        try:
            routes = await self._run(loader)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # 没有其他等待者时避免 "exception was never retrieved"
            future.exception()
            raise
        else:
            future.set_result(routes)
            if use_cache:
                self.set_cache(origin, destination, preference, routes)
            return list(routes)
        finally:
            if use_cache and self._pending.get(key) is future:
                del self._pending[key]

    async def _run(self, loader: RouteLoader) -> list[Route]:
        while True:
            permit = self.can_make_request()
            if permit.allowed:
                break
            if self._in_flight:
                await self._wait_idle()
            elif self._clock() < self._backoff.backoff_until:
                raise RateLimitedError(retry_after_seconds=permit.wait_seconds, message=permit.reason)
            else:
                await self._sleep((permit.wait_ms or 0) / 1000)

        self.start_request()
        try:
            routes = await loader()
        except RateLimitedError as e:
            notice = self.handle_rate_limited()
            raise RateLimitedError(
                retry_after_seconds=notice.backoff_seconds,
                details=e.details,
            ) from e
        finally:
            self.end_request()

        self.reset_backoff()
        return routes

    async def _wait_idle(self) -> None:
        """等待在途请求结束（end_request 唤醒全部等待者）"""
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter
