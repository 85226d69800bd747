"""
路径获取数据模型

定义坐标、路线偏好、导航步骤、标准路线以及缓存/退避状态等核心数据结构
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class RoutePreference(str, Enum):
    """路线偏好枚举"""
    FASTEST = "fastest"
    SHORTEST = "shortest"
    SCENIC = "scenic"
    AVOID_TOLLS = "avoid_tolls"
    BALANCED = "balanced"

    @classmethod
    def parse(cls, value: object) -> "RoutePreference":
        """解析偏好，无法识别的值回退为 fastest"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning(f"未知路线偏好 {value!r}，回退为 fastest")
            return cls.FASTEST


# ============================================================================
# 基础几何类型
# ============================================================================

class Coordinate(BaseModel):
    """WGS84 坐标点（创建后不可变）"""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, description="纬度")
    lng: float = Field(..., ge=-180, le=180, description="经度")

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.lat) and math.isfinite(self.lng)
            and -90 <= self.lat <= 90 and -180 <= self.lng <= 180
        )


# ============================================================================
# 路线
# ============================================================================

class RouteStep(BaseModel):
    """导航步骤，顺序即行驶顺序"""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="步骤序号")
    instruction_text: str = Field("", description="导航指令文本")
    distance_meters: float = Field(0.0, ge=0, description="步骤距离（米）")
    maneuver_type: str = Field("turn", description="机动类型: turn/depart/arrive/roundabout...")
    maneuver_modifier: Optional[str] = Field(None, description="机动修饰: left/right/straight...")
    location: Coordinate = Field(..., description="机动点坐标")
    road_name: str = Field("", description="道路名")
    polyline_index: Optional[int] = Field(None, ge=0, description="机动点在路线折线中的索引")


class Route(BaseModel):
    """标准化路线"""
    model_config = ConfigDict(frozen=True)

    id: str
    provider: str = Field("", description="来源路径服务: openrouteservice/tomtom")
    polyline: tuple[Coordinate, ...] = Field(..., description="路线折线，按行驶顺序")
    distance_meters: float = Field(..., ge=0)
    duration_seconds: float = Field(..., ge=0)
    adjusted_duration_seconds: float = Field(..., ge=0, description="交通修正后耗时，不小于基准耗时")
    steps: tuple[RouteStep, ...] = Field(default_factory=tuple)
    is_alternative: bool = False
    average_speed_kmh: float = Field(0.0, ge=0)
    has_live_traffic_data: bool = False
    traffic_multiplier: float = Field(1.0, ge=1.0)


class TrafficAdjustment(BaseModel):
    """交通修正结果"""
    multiplier: float = Field(..., ge=1.0, le=2.5)
    source: Literal["live", "time_of_day"]


class TrafficFlowSample(BaseModel):
    """单点交通流量"""
    current_speed_kmh: float = Field(..., ge=0)
    free_flow_speed_kmh: float = Field(..., ge=0)
    confidence: float = Field(0.5, ge=0, le=1)
    road_closure: bool = False


class GeocodeResult(BaseModel):
    """地理编码结果"""
    label: str
    address: str
    lat: float
    lng: float
    type: Optional[str] = None


# ============================================================================
# 缓存与请求协调
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    key: str
    routes: list[Route]
    created_at: float


@dataclass(slots=True)
class BackoffState:
    failure_count: int = 0
    backoff_until: float = 0.0


@dataclass(frozen=True, slots=True)
class RequestPermit:
    """请求许可检查结果"""
    allowed: bool
    reason: Optional[str] = None
    wait_ms: Optional[int] = None

    @property
    def wait_seconds(self) -> Optional[int]:
        if self.wait_ms is None:
            return None
        return math.ceil(self.wait_ms / 1000)


@dataclass(frozen=True, slots=True)
class BackoffNotice:
    backoff_seconds: int


class ProgressResult(BaseModel):
    """当前位置在路线上的最近点，每次位置更新重新计算"""
    model_config = ConfigDict(frozen=True)

    nearest_index: int = Field(..., ge=0)
    distance_meters: float = Field(..., ge=0)
    coordinate: Coordinate
