"""
大地测量工具

WGS84 坐标下的球面距离与路径最近点搜索。

- 距离使用 Haversine 公式，地球半径 6371000 米
- 路径最近点为线性扫描，路径点数量在数百量级
"""
from __future__ import annotations

import math
from typing import Sequence

from .schemas import Coordinate, ProgressResult

# 地球半径（米）
EARTH_RADIUS_M = 6371000.0


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """
    Haversine公式计算两点间球面距离（米）

    相同点返回 0，不会抛异常。
    """
    lat1_rad = math.radians(a.lat)
    lat2_rad = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def nearest_point_on_path(position: Coordinate, path: Sequence[Coordinate]) -> ProgressResult:
    """
    查找路径上距当前位置最近的路径点

    Args:
        position: 当前位置
        path: 路径点序列（按行驶顺序）

    Returns:
        最近点索引、距离与坐标；距离相同时取路径顺序中第一个

    Raises:
        ValueError: 路径为空
    """
    if not path:
        raise ValueError("路径至少需要1个点")

    best_index = 0
    best_distance = distance_meters(position, path[0])
    for index in range(1, len(path)):
        d = distance_meters(position, path[index])
        if d < best_distance:
            best_index = index
            best_distance = d

    return ProgressResult(
        nearest_index=best_index,
        distance_meters=best_distance,
        coordinate=path[best_index],
    )


def cumulative_distances(path: Sequence[Coordinate]) -> list[float]:
    """计算路径累计距离，第 i 项为起点到第 i 个点的沿途距离"""
    cumulative = [0.0]
    for i in range(len(path) - 1):
        cumulative.append(cumulative[-1] + distance_meters(path[i], path[i + 1]))
    return cumulative


def offset_north(origin: Coordinate, meters: float) -> Coordinate:
    """沿经线向北平移指定米数（负值向南）"""
    delta_lat = math.degrees(meters / EARTH_RADIUS_M)
    return Coordinate(lat=origin.lat + delta_lat, lng=origin.lng)


def midpoint(path: Sequence[Coordinate]) -> Coordinate:
    """返回路径中间索引处的点，用于单点交通流查询"""
    if not path:
        raise ValueError("路径至少需要1个点")
    return path[len(path) // 2]
