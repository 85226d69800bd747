"""路况上报（隐患）模块：上报数据模型与临近提醒匹配"""

from .schemas import HazardAlert, ProximityPrompt, TrafficIncident
from .proximity import ProximityAlertMatcher

__all__ = [
    "HazardAlert",
    "ProximityPrompt",
    "TrafficIncident",
    "ProximityAlertMatcher",
]
