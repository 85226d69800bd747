"""
偏离路线改道

进入 OffRoute 后，满足以下条件才发起改道：
- 当前没有进行中的改道
- 距上次改道尝试不少于节流间隔（10秒，由协调器记录）

改道以当前位置为起点、原终点为终点，不走缓存。
上次改道时间在“发起尝试”时更新，与成功失败无关，保证连续失败时节流依然有效。
"""
from __future__ import annotations

import logging
from typing import Any

from roadwatch.core.exceptions import RateLimitedError, RoutingError
from roadwatch.domains.routing.coordinator import RouteRequestCoordinator
from roadwatch.domains.routing.schemas import Coordinate, RoutePreference
from roadwatch.domains.routing.service import RouteAcquisitionService
from .schemas import NavigationState, RerouteOutcome, RerouteStatus

logger = logging.getLogger(__name__)


class OffRouteRerouter:
    """偏离路线改道器"""

    def __init__(
        self,
        coordinator: RouteRequestCoordinator,
        acquisition: RouteAcquisitionService,
        **acquire_options: Any,
    ) -> None:
        self._coordinator = coordinator
        self._acquisition = acquisition
        self._acquire_options = acquire_options
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def should_attempt(self, state: NavigationState) -> bool:
        return (
            state == NavigationState.OFF_ROUTE
            and not self._in_progress
            and self._coordinator.can_reroute()
        )

    def begin(self) -> None:
        """
        同步占用改道名额

        在创建后台改道任务之前调用，紧接着的下一次位置更新就能看到
        改道进行中与新的节流时间，不会重复发起。
        """
        self._coordinator.mark_reroute()
        self._in_progress = True

    def release(self) -> None:
        """改道任务结束或在开始前被取消时释放名额"""
        self._in_progress = False

    async def attempt(
        self,
        position: Coordinate,
        destination: Coordinate,
        preference: RoutePreference,
    ) -> RerouteOutcome:
        """
        发起一次改道

        Returns:
            SUCCESS 带新路线；RATE_LIMITED 带等待提示；FAILED 带错误码
        """
        if not self._in_progress:
            self.begin()
        logger.info(f"发起改道: ({position.lat},{position.lng}) → ({destination.lat},{destination.lng})")
        try:
            routes = await self._coordinator.execute(
                position,
                destination,
                preference,
                self._acquisition.loader_for(position, destination, preference, **self._acquire_options),
                use_cache=False,
            )
        except RateLimitedError as e:
            logger.warning(f"改道被限流: {e.message}")
            return RerouteOutcome(
                status=RerouteStatus.RATE_LIMITED,
                message=e.message,
                error_code=e.error_code,
                retry_after_seconds=e.retry_after_seconds,
            )
        except RoutingError as e:
            logger.error(f"改道失败: {e.error_code}")
            return RerouteOutcome(
                status=RerouteStatus.FAILED,
                message=e.message,
                error_code=e.error_code,
            )
        finally:
            self.release()

        logger.info(f"改道成功: 新路线 {routes[0].id}")
        return RerouteOutcome(status=RerouteStatus.SUCCESS, route=routes[0])
