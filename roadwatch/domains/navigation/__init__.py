"""导航模块：进度跟踪、偏离改道、导航会话"""

from .schemas import (
    NavigationState,
    NavigationEvent,
    NavigationEventType,
    NavigationUpdate,
    RerouteOutcome,
    RerouteStatus,
    BestEffortResult,
)
from .progress import ProgressTracker
from .rerouter import OffRouteRerouter
from .odometer import DrivenDistanceRecorder
from .session import NavigationSession

__all__ = [
    "NavigationState",
    "NavigationEvent",
    "NavigationEventType",
    "NavigationUpdate",
    "RerouteOutcome",
    "RerouteStatus",
    "BestEffortResult",
    "ProgressTracker",
    "OffRouteRerouter",
    "DrivenDistanceRecorder",
    "NavigationSession",
]
