"""
路况上报数据模型

HazardAlert 由外部上报存储提供，本模块只读，不维护投票计数。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _as_utc(moment: datetime) -> datetime:
    """无时区的时间按UTC处理"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class HazardAlert(BaseModel):
    """用户上报的路况隐患"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="上报ID")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    type: str = Field(..., description="类型: police/accident/roadwork/hazard...")
    category: Optional[str] = Field(None, description="子分类")
    status: str = Field("active", description="状态: active/resolved")
    created_at: datetime
    expires_at: Optional[datetime] = Field(None, description="过期时间，空表示不过期")
    confirm_count: int = Field(0, ge=0)
    deny_count: int = Field(0, ge=0)

    def is_live(self, now: datetime) -> bool:
        """状态为 active 且未过期"""
        if self.status != "active":
            return False
        if self.expires_at is not None and _as_utc(self.expires_at) < _as_utc(now):
            return False
        return True


class ProximityPrompt(BaseModel):
    """临近提醒事件，确认/否认由外部投票模块处理"""
    alert: HazardAlert
    distance_meters: float = Field(..., ge=0)


class TrafficIncident(BaseModel):
    """交通事件（事故、施工等）"""
    id: str
    lat: float
    lng: float
    type: str
    description: str = ""
    severity: int = Field(0, ge=0, description="延误程度 0-4")
    start_time: Optional[str] = None
    end_time: Optional[str] = None
