"""
导航数据模型

定义导航状态、进度更新、改道结果与导航事件
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from roadwatch.domains.hazards.schemas import ProximityPrompt
from roadwatch.domains.routing.schemas import ProgressResult, Route, RouteStep


class NavigationState(str, Enum):
    """导航状态枚举"""
    IDLE = "idle"              # 未导航
    TRACKING = "tracking"      # 沿路线行驶
    OFF_ROUTE = "off_route"    # 偏离路线


class RerouteStatus(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


class NavigationEventType(str, Enum):
    PROGRESS = "progress"
    ROUTE_REPLACED = "route_replaced"
    REROUTE_WAIT = "reroute_wait"
    REROUTE_FAILED = "reroute_failed"
    PROXIMITY_PROMPT = "proximity_prompt"
    NAVIGATION_STOPPED = "navigation_stopped"


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """单次位置更新的进度计算结果"""
    progress: ProgressResult
    next_instruction: Optional[RouteStep]
    distance_to_next_instruction_meters: Optional[float]
    remaining_distance_meters: float
    remaining_time_seconds: float
    state: NavigationState


@dataclass(frozen=True, slots=True)
class RerouteOutcome:
    """
    改道尝试结果

    RATE_LIMITED 时 message 为给用户展示的等待提示；FAILED 时 error_code 为错误码。
    """
    status: RerouteStatus
    route: Optional[Route] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    retry_after_seconds: Optional[int] = None


@dataclass(frozen=True, slots=True)
class BestEffortResult:
    """后台附带操作的结果，失败只记录不影响主流程"""
    ok: bool
    error: Optional[str] = None


class NavigationUpdate(BaseModel):
    """一次位置更新对外输出"""
    state: NavigationState
    generation: int = Field(..., ge=0, description="当前路线代次")
    progress: Optional[ProgressResult] = None
    next_instruction: Optional[RouteStep] = None
    distance_to_next_instruction_meters: Optional[float] = None
    remaining_distance_meters: Optional[float] = None
    remaining_time_seconds: Optional[float] = None
    reroute_triggered: bool = False
    proximity_prompt: Optional[ProximityPrompt] = None


class NavigationEvent(BaseModel):
    """推送给界面的导航事件"""
    type: NavigationEventType
    generation: int = Field(..., ge=0)
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
