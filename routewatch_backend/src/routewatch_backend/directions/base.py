from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class TravelMode(str, Enum):
    DRIVING = "driving"
    WALKING = "walking"
    TRANSIT = "transit"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TravelMode":
        """未知或空值一律按驾车处理"""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.DRIVING


@dataclass(slots=True)
class RouteOptions:

    mode: TravelMode = TravelMode.DRIVING

    # 仅驾车模式生效，步行/公交请求会丢弃这两个标志
    avoid_highways: bool = False
    avoid_tolls: bool = False

    # 额外请求的备选路线数量，0 表示只要主路线
    alternatives: int = 0


@dataclass(slots=True)
class Route:
    """一条候选路线，供采集周期持久化"""

    route_index: int

    # 驾车模式下优先使用实时路况时长
    duration_seconds: Optional[int]
    distance_meters: Optional[int]
    summary: Optional[str] = None
    steps: List[Dict[str, Any]] = field(default_factory=list)

    # overview_polyline 原文，需要时再解码
    polyline: Optional[str] = None
    static_duration_seconds: Optional[int] = None

    def details(self) -> Dict[str, Any]:
        """快照 route_details 字段的内容"""
        return {
            "summary": self.summary,
            "steps": self.steps,
            "polyline": self.polyline,
            "static_duration_seconds": self.static_duration_seconds,
        }


@dataclass(slots=True)
class RoutePreview:
    """地图预览用的主路线几何信息，不落库"""

    points: List[Tuple[float, float]]
    start: Optional[Tuple[float, float]]
    end: Optional[Tuple[float, float]]
    duration_seconds: Optional[int] = None
    distance_meters: Optional[int] = None


class DirectionsError(Exception):
    """路线服务基础异常类"""

    def __init__(self, message: str, provider_status: Optional[str] = None):
        self.provider_status = provider_status
        super().__init__(message)


class DirectionsRetryableError(DirectionsError):
    """可重试异常

    网络故障、HTTP 5xx/429、OVER_QUERY_LIMIT 等临时性错误。
    采集周期捕获后只记录日志，下一次 tick 即为重试。
    """


class DirectionsConfigurationError(DirectionsError):
    """致命配置异常

    API key 缺失、仍为占位值，或被服务方拒绝（REQUEST_DENIED / OVER_DAILY_LIMIT）。
    与“没有路线”严格区分，需要在手动启动或预览时立即反馈给调用方。
    """
