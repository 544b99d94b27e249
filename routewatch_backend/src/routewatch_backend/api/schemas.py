"""API 请求与响应模型

使用 Pydantic 实现数据验证和序列化。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..directions.base import TravelMode

# 运行中的任务不允许修改这些字段，修改会让定时器捕获的周期/路线参数过期
SCHEDULE_FIELDS = frozenset(
    {
        "start_location",
        "end_location",
        "start_time",
        "end_time",
        "cycle_seconds",
        "duration_days",
        "navigation_type",
        "avoid_highways",
        "avoid_tolls",
        "additional_routes",
    }
)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class JobBase(BaseModel):
    """任务展示字段"""
    name: Optional[str] = Field(None, description="任务标题")
    start_name: Optional[str] = Field(None, description="起点展示名")
    end_name: Optional[str] = Field(None, description="终点展示名")

    @field_validator("name", "start_name", "end_name", mode="before")
    @classmethod
    def _strip_names(cls, value):
        return _blank_to_none(value)


class JobCreate(JobBase):
    """创建任务请求

    周期可用 cycle_minutes 或 cycle_seconds 表示，正的 cycle_seconds 优先。
    """
    start_location: str = Field(..., min_length=1, description="起点：地址或 lat,lng")
    end_location: str = Field(..., min_length=1, description="终点：地址或 lat,lng")
    start_time: Optional[datetime] = Field(None, description="采集窗口起点")
    end_time: Optional[datetime] = Field(None, description="显式结束时间")
    cycle_minutes: Optional[int] = Field(None, ge=0, description="采集周期（分钟）")
    cycle_seconds: Optional[int] = Field(None, ge=0, description="采集周期（秒），>0 时优先")
    duration_days: Optional[int] = Field(None, ge=1, description="采集天数，缺省取配置值")
    navigation_type: TravelMode = Field(TravelMode.DRIVING, description="出行方式")
    avoid_highways: bool = Field(False, description="规避高速（仅驾车）")
    avoid_tolls: bool = Field(False, description="规避收费路段（仅驾车）")
    additional_routes: int = Field(0, ge=0, le=2, description="额外备选路线数量（已弃用）")

    @field_validator("start_location", "end_location")
    @classmethod
    def _strip_location(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be blank")
        return value


class JobUpdate(JobBase):
    """更新任务请求，只处理请求中显式给出的字段"""
    start_location: Optional[str] = Field(None, min_length=1)
    end_location: Optional[str] = Field(None, min_length=1)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cycle_minutes: Optional[int] = Field(None, ge=0)
    cycle_seconds: Optional[int] = Field(None, ge=0)
    duration_days: Optional[int] = Field(None, ge=1)
    navigation_type: Optional[TravelMode] = None
    avoid_highways: Optional[bool] = None
    avoid_tolls: Optional[bool] = None
    additional_routes: Optional[int] = Field(None, ge=0, le=2)


class JobResponse(BaseModel):
    """任务响应模型"""
    id: str = Field(..., description="任务唯一标识符")
    name: Optional[str] = None
    start_name: Optional[str] = None
    end_name: Optional[str] = None
    start_location: str
    end_location: str
    navigation_type: str
    avoid_highways: bool
    avoid_tolls: bool
    additional_routes: int
    cycle_seconds: int = Field(..., description="采集周期（秒）")
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_days: int
    status: str = Field(..., description="pending/running/paused/completed")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SnapshotResponse(BaseModel):
    """路线快照响应模型"""
    id: str
    job_id: str
    route_index: int = Field(..., description="0=主路线")
    collected_at: datetime
    duration_seconds: Optional[int] = None
    distance_meters: Optional[int] = None
    route_details: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class ExportResponse(BaseModel):
    """JSON 导出响应模型"""
    job: JobResponse
    snapshots: List[SnapshotResponse]


class RoutePreviewResponse(BaseModel):
    """路线预览响应模型"""
    points: List[List[float]] = Field(..., description="[[lat, lng], ...]")
    start: Optional[List[float]] = None
    end: Optional[List[float]] = None
    duration_seconds: Optional[int] = None
    distance_meters: Optional[int] = None


class ReverseGeocodeResponse(BaseModel):
    address: Optional[str] = None


class DeleteResponse(BaseModel):
    ok: bool = True
