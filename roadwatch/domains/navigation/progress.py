"""
导航进度跟踪

根据实时位置与当前路线计算：
- 最近路径点与偏离距离
- 下一条导航指令及到达该指令的沿途距离
- 剩余距离（最近点之后的折线长度）与剩余时间（按距离比例估算）

状态机: Idle → Tracking → OffRoute
偏离距离 > 阈值（60米）进入 OffRoute；距离缩小不会自动恢复，
只有安装新路线才回到 Tracking，避免在阈值附近反复切换。
"""
from __future__ import annotations

import logging
from typing import Optional

from roadwatch.domains.routing.geodesy import (
    cumulative_distances,
    distance_meters,
    nearest_point_on_path,
)
from roadwatch.domains.routing.schemas import Coordinate, Route, RouteStep
from .schemas import NavigationState, ProgressUpdate

logger = logging.getLogger(__name__)

DEFAULT_OFF_ROUTE_THRESHOLD_M = 60.0


class ProgressTracker:
    """
    单个导航会话的进度跟踪器

    Attributes:
        _route: 当前路线
        _cumulative: 折线累计距离，安装路线时预计算
        _step_path_indices: 每个步骤机动点对应的折线索引
        _state: 导航状态
        current_step_index: 当前指令序号，安装新路线时归零
    """

    def __init__(self, off_route_threshold_m: float = DEFAULT_OFF_ROUTE_THRESHOLD_M) -> None:
        self._threshold = off_route_threshold_m
        self._route: Optional[Route] = None
        self._cumulative: list[float] = []
        self._step_path_indices: list[int] = []
        self._state = NavigationState.IDLE
        self.current_step_index = 0

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def route(self) -> Optional[Route]:
        return self._route

    def install_route(self, route: Route) -> None:
        """安装路线并进入 Tracking（开始导航或改道成功）"""
        if not route.polyline:
            raise ValueError("路线折线为空")
        self._route = route
        self._cumulative = cumulative_distances(route.polyline)
        self._step_path_indices = [self._path_index(step, route) for step in route.steps]
        self._state = NavigationState.TRACKING
        self.current_step_index = 0
        logger.info(f"安装路线 {route.id}: {len(route.polyline)} 个路径点, {len(route.steps)} 个步骤")

    def reset(self) -> None:
        self._route = None
        self._cumulative = []
        self._step_path_indices = []
        self._state = NavigationState.IDLE
        self.current_step_index = 0

    @staticmethod
    def _path_index(step: RouteStep, route: Route) -> int:
        if step.polyline_index is not None and step.polyline_index < len(route.polyline):
            return step.polyline_index
        return nearest_point_on_path(step.location, route.polyline).nearest_index

    def update_position(self, position: Coordinate, route: Optional[Route] = None) -> ProgressUpdate:
        """
        处理一次位置更新

        Args:
            position: 当前位置
            route: 当前路线；与已安装路线不同时先安装

        Returns:
            进度、下一条指令、剩余距离/时间以及更新后的状态

        Raises:
            RuntimeError: 尚未安装路线
        """
        if route is not None and (self._route is None or route.id != self._route.id):
            self.install_route(route)
        if self._route is None:
            raise RuntimeError("未安装路线，无法计算导航进度")
        route = self._route

        progress = nearest_point_on_path(position, route.polyline)

        if self._state == NavigationState.TRACKING and progress.distance_meters > self._threshold:
            self._state = NavigationState.OFF_ROUTE
            logger.info(f"偏离路线: 距离最近路径点 {progress.distance_meters:.1f}m")

        next_step: Optional[RouteStep] = None
        distance_to_next: Optional[float] = None
        for i, step in enumerate(route.steps):
            path_index = self._step_path_indices[i]
            if path_index < progress.nearest_index:
                continue
            to_step = distance_meters(position, step.location)
            if path_index == progress.nearest_index and to_step == 0:
                continue
            next_step = step
            if path_index == progress.nearest_index:
                distance_to_next = to_step
            else:
                distance_to_next = (
                    progress.distance_meters
                    + self._cumulative[path_index]
                    - self._cumulative[progress.nearest_index]
                )
            self.current_step_index = i
            break

        remaining = self._cumulative[-1] - self._cumulative[progress.nearest_index]
        if route.distance_meters > 0:
            remaining_time = remaining / route.distance_meters * route.duration_seconds
        else:
            remaining_time = 0.0

        return ProgressUpdate(
            progress=progress,
            next_instruction=next_step,
            distance_to_next_instruction_meters=distance_to_next,
            remaining_distance_meters=remaining,
            remaining_time_seconds=remaining_time,
            state=self._state,
        )
