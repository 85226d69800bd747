"""
临近提醒匹配

每次位置更新扫描一遍路况上报，半径内（含边界）、有效、本会话未提醒过的上报中
取距离最近的一个提醒；每次位置更新最多提醒一次，同一上报每个会话最多提醒一次。
与是否在导航无关，始终运行。
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from roadwatch.domains.routing.geodesy import distance_meters
from roadwatch.domains.routing.schemas import Coordinate
from .schemas import HazardAlert, ProximityPrompt

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 100.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProximityAlertMatcher:
    """
    临近提醒匹配器

    Attributes:
        _radius_m: 提醒半径（米）
        _shown: 本会话已提醒的上报ID，只增不减，reset() 时清空
    """

    def __init__(
        self,
        radius_m: float = DEFAULT_RADIUS_M,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._radius_m = radius_m
        self._now = now
        self._shown: set[str] = set()

    @property
    def shown_alert_ids(self) -> frozenset[str]:
        return frozenset(self._shown)

    def check(self, position: Coordinate, alerts: Iterable[HazardAlert]) -> Optional[ProximityPrompt]:
        """
        匹配当前位置附近的上报

        Returns:
            需要提醒的上报（距离相同时取列表中靠前的），没有则返回 None
        """
        now = self._now()
        best: Optional[tuple[float, HazardAlert]] = None
        for alert in alerts:
            if alert.id in self._shown or not alert.is_live(now):
                continue
            d = distance_meters(position, Coordinate(lat=alert.lat, lng=alert.lng))
            if d > self._radius_m:
                continue
            if best is None or d < best[0]:
                best = (d, alert)

        if best is None:
            return None

        d, alert = best
        self._shown.add(alert.id)
        logger.info(f"临近路况提醒: {alert.id} ({alert.type}) 距离 {d:.0f}m")
        return ProximityPrompt(alert=alert, distance_meters=d)

    def reset(self) -> None:
        """会话重新开始时清空已提醒记录"""
        self._shown.clear()
