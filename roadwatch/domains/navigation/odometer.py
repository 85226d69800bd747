"""
行驶里程记录

相邻两次位置的距离在 (0.005km, 1km) 之间时计入里程，并在后台上报给外部用户资料存储。
上报失败只记录日志，不影响位置更新主流程。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from roadwatch.domains.routing.geodesy import distance_meters
from roadwatch.domains.routing.schemas import Coordinate
from .schemas import BestEffortResult

logger = logging.getLogger(__name__)

# 小于5米视为定位抖动，大于1公里视为定位跳变
MIN_STEP_KM = 0.005
MAX_STEP_KM = 1.0

DrivenKmReporter = Callable[[float], Awaitable[None]]


class DrivenDistanceRecorder:
    """
    行驶里程记录器

    Attributes:
        total_km: 本会话累计里程
        last_result: 最近一次上报结果
    """

    def __init__(self, add_driven_km: Optional[DrivenKmReporter] = None) -> None:
        self._add_driven_km = add_driven_km
        self._previous: Optional[Coordinate] = None
        self._tasks: set[asyncio.Task[BestEffortResult]] = set()
        self.total_km = 0.0
        self.last_result: Optional[BestEffortResult] = None

    def record(self, position: Coordinate) -> Optional[asyncio.Task[BestEffortResult]]:
        """
        记录一次位置，需要上报时返回后台任务

        必须在事件循环中调用。
        """
        previous, self._previous = self._previous, position
        if previous is None:
            return None

        step_km = distance_meters(previous, position) / 1000
        if not (MIN_STEP_KM < step_km < MAX_STEP_KM):
            return None

        self.total_km += step_km
        if self._add_driven_km is None:
            return None

        task = asyncio.create_task(self._report(step_km), name="driven-km-report")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _report(self, step_km: float) -> BestEffortResult:
        try:
            await self._add_driven_km(step_km)
            result = BestEffortResult(ok=True)
        except Exception as e:
            logger.warning(f"里程上报失败: {e}")
            result = BestEffortResult(ok=False, error=str(e))
        self.last_result = result
        return result

    async def drain(self) -> list[BestEffortResult]:
        """等待全部未完成的上报（关闭会话或测试时使用）"""
        if not self._tasks:
            return []
        return list(await asyncio.gather(*self._tasks))
