"""
导航会话

界面与导航核心之间的边界：
- 接收位置更新、开始/停止导航命令
- 输出路线、进度、下一条指令、临近提醒、改道等待/失败通知

路线代次（generation）在开始、停止、每次改道成功时递增；
后台改道返回时代次已变化（已停止或已换路线）则丢弃结果，不会重新激活导航。

使用示例:
```python
session = NavigationSession(coordinator, acquisition, event_sink=push)
routes = await session.plan_routes(origin, destination, "fastest")
await session.start(routes[0], destination, "fastest")
update = await session.update_position(position, alerts)
await session.stop()
```
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from roadwatch.core.config import Settings
from roadwatch.domains.hazards.proximity import ProximityAlertMatcher
from roadwatch.domains.hazards.schemas import HazardAlert
from roadwatch.domains.routing.coordinator import RouteRequestCoordinator
from roadwatch.domains.routing.schemas import Coordinate, Route, RoutePreference
from roadwatch.domains.routing.service import RouteAcquisitionService, coerce_coordinate
from .odometer import DrivenDistanceRecorder
from .progress import ProgressTracker
from .rerouter import OffRouteRerouter
from .schemas import (
    NavigationEvent,
    NavigationEventType,
    NavigationState,
    NavigationUpdate,
    RerouteOutcome,
    RerouteStatus,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[NavigationEvent], Awaitable[None]]


class NavigationSession:
    """
    单个用户的导航会话

    Attributes:
        _tracker: 进度跟踪器
        _rerouter: 改道器
        _proximity: 临近提醒匹配器（与是否导航无关）
        _odometer: 行驶里程记录器（可选）
        _generation: 路线代次
        _reroute_task: 进行中的后台改道任务
    """

    def __init__(
        self,
        coordinator: RouteRequestCoordinator,
        acquisition: RouteAcquisitionService,
        *,
        tracker: Optional[ProgressTracker] = None,
        rerouter: Optional[OffRouteRerouter] = None,
        proximity: Optional[ProximityAlertMatcher] = None,
        odometer: Optional[DrivenDistanceRecorder] = None,
        event_sink: Optional[EventSink] = None,
        **acquire_options: Any,
    ) -> None:
        self._coordinator = coordinator
        self._acquisition = acquisition
        self._acquire_options = acquire_options
        self._tracker = tracker or ProgressTracker()
        self._rerouter = rerouter or OffRouteRerouter(coordinator, acquisition, **acquire_options)
        self._proximity = proximity or ProximityAlertMatcher()
        self._odometer = odometer
        self._event_sink = event_sink

        self._generation = 0
        self._destination: Optional[Coordinate] = None
        self._preference = RoutePreference.FASTEST
        self._reroute_task: Optional[asyncio.Task[RerouteOutcome]] = None

    @classmethod
    def from_settings(
        cls,
        coordinator: RouteRequestCoordinator,
        acquisition: RouteAcquisitionService,
        settings: Settings,
        **kwargs: Any,
    ) -> "NavigationSession":
        """按配置的偏离阈值与提醒半径创建会话"""
        kwargs.setdefault("tracker", ProgressTracker(settings.off_route_threshold_m))
        kwargs.setdefault("proximity", ProximityAlertMatcher(settings.proximity_radius_m))
        return cls(coordinator, acquisition, **kwargs)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> NavigationState:
        return self._tracker.state

    @property
    def active_route(self) -> Optional[Route]:
        return self._tracker.route

    @property
    def pending_reroute(self) -> Optional[asyncio.Task[RerouteOutcome]]:
        if self._reroute_task is not None and not self._reroute_task.done():
            return self._reroute_task
        return None

    async def plan_routes(
        self,
        origin: Any,
        destination: Any,
        preference: RoutePreference | str = RoutePreference.FASTEST,
    ) -> list[Route]:
        """规划路线（走缓存与单飞控制）"""
        origin = coerce_coordinate(origin, "origin")
        destination = coerce_coordinate(destination, "destination")
        preference = RoutePreference.parse(preference)
        return await self._coordinator.execute(
            origin,
            destination,
            preference,
            self._acquisition.loader_for(origin, destination, preference, **self._acquire_options),
        )

    async def start(
        self,
        route: Route,
        destination: Any,
        preference: RoutePreference | str = RoutePreference.FASTEST,
    ) -> None:
        """开始导航，替换当前路线并作废进行中的改道"""
        await self._cancel_reroute()
        self._generation += 1
        self._destination = coerce_coordinate(destination, "destination")
        self._preference = RoutePreference.parse(preference)
        self._tracker.install_route(route)
        logger.info(f"开始导航: 路线 {route.id}, 代次 {self._generation}")

    async def stop(self) -> None:
        """停止导航，取消后台改道，迟到的改道结果会被丢弃"""
        self._generation += 1
        await self._cancel_reroute()
        self._tracker.reset()
        self._destination = None
        logger.info(f"停止导航, 代次 {self._generation}")
        await self._emit(NavigationEventType.NAVIGATION_STOPPED)

    async def update_position(
        self,
        position: Any,
        alerts: Iterable[HazardAlert] = (),
    ) -> NavigationUpdate:
        """
        处理一次位置更新

        Args:
            position: 当前位置
            alerts: 当前有效的路况上报列表（外部存储提供）

        Returns:
            本次更新的导航输出
        """
        position = coerce_coordinate(position, "position")
        update = NavigationUpdate(state=self._tracker.state, generation=self._generation)

        if self._tracker.route is not None:
            progress = self._tracker.update_position(position)
            update = NavigationUpdate(
                state=progress.state,
                generation=self._generation,
                progress=progress.progress,
                next_instruction=progress.next_instruction,
                distance_to_next_instruction_meters=progress.distance_to_next_instruction_meters,
                remaining_distance_meters=progress.remaining_distance_meters,
                remaining_time_seconds=progress.remaining_time_seconds,
            )
            await self._emit(NavigationEventType.PROGRESS, update.model_dump(
                include={"state", "progress", "next_instruction", "remaining_distance_meters",
                         "remaining_time_seconds"},
                mode="json",
            ))
            if self._destination is not None and self._rerouter.should_attempt(progress.state):
                self._launch_reroute(position, self._destination)
                update = update.model_copy(update={"reroute_triggered": True})

        prompt = self._proximity.check(position, alerts)
        if prompt is not None:
            update = update.model_copy(update={"proximity_prompt": prompt})
            await self._emit(NavigationEventType.PROXIMITY_PROMPT, prompt.model_dump(mode="json"))

        if self._odometer is not None:
            self._odometer.record(position)

        return update

    def _launch_reroute(self, position: Coordinate, destination: Coordinate) -> None:
        token = self._generation
        # 先同步占用改道名额，再创建任务
        self._rerouter.begin()
        self._reroute_task = asyncio.create_task(
            self._reroute(position, destination, token),
            name=f"reroute-{token}",
        )

    async def _reroute(self, position: Coordinate, destination: Coordinate, token: int) -> RerouteOutcome:
        outcome = await self._rerouter.attempt(position, destination, self._preference)

        if token != self._generation:
            logger.info(f"丢弃过期的改道结果: 代次 {token} != {self._generation}")
            return outcome

        if outcome.status == RerouteStatus.SUCCESS and outcome.route is not None:
            self._generation += 1
            self._tracker.install_route(outcome.route)
            await self._emit(NavigationEventType.ROUTE_REPLACED, {"route_id": outcome.route.id})
        elif outcome.status == RerouteStatus.RATE_LIMITED:
            await self._emit(NavigationEventType.REROUTE_WAIT, {
                "message": outcome.message,
                "retry_after_seconds": outcome.retry_after_seconds,
            })
        else:
            # 保留原路线继续导航
            await self._emit(NavigationEventType.REROUTE_FAILED, {
                "error_code": outcome.error_code,
                "message": outcome.message,
            })
        return outcome

    async def _cancel_reroute(self) -> None:
        task, self._reroute_task = self._reroute_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        # 任务在开始执行前被取消时 attempt 的 finally 不会运行
        self._rerouter.release()

    async def _emit(self, event_type: NavigationEventType, payload: Optional[dict] = None) -> None:
        if self._event_sink is None:
            return
        event = NavigationEvent(type=event_type, generation=self._generation, payload=payload or {})
        try:
            await self._event_sink(event)
        except Exception as e:
            logger.warning(f"推送导航事件失败: {e}")
