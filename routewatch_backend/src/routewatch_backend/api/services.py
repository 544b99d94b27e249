"""业务逻辑服务层

本模块实现了采集任务相关的业务逻辑，作为路由和数据访问层/调度器之间的中间层。
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config.settings import SchedulerConfig
from ..directions.base import RouteOptions, RoutePreview, TravelMode
from ..directions.client import DirectionsClient
from ..scheduler.errors import JobConflictError, JobNotFoundError
from ..scheduler.job_scheduler import JobScheduler
from ..scheduler.timing import normalize_cycle_seconds
from ..storage.job_store import JobStore
from ..storage.models import JobStatus, RouteJob
from .schemas import (
    SCHEDULE_FIELDS,
    ExportResponse,
    JobCreate,
    JobResponse,
    JobUpdate,
    SnapshotResponse,
)

logger = logging.getLogger("routewatch.api.services")

CSV_COLUMNS = ("collected_at", "duration_seconds", "distance_meters", "duration_minutes")
NON_NULLABLE_FIELDS = (
    "start_location",
    "end_location",
    "duration_days",
    "navigation_type",
    "avoid_highways",
    "avoid_tolls",
    "additional_routes",
)


class JobService:
    """采集任务业务逻辑服务

    负责归属校验、周期字段归一化、运行中任务的编辑限制以及导出格式，
    任务的启停全部委托给 JobScheduler。
    """

    def __init__(
        self,
        store: JobStore,
        scheduler: JobScheduler,
        scheduler_config: Optional[SchedulerConfig] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.scheduler_config = scheduler_config or SchedulerConfig()

    def list_jobs(self, owner_id: str) -> List[JobResponse]:
        return [JobResponse.model_validate(job) for job in self.store.list_for_owner(owner_id)]

    def get_job(self, job_id: str, owner_id: str) -> RouteJob:
        """按归属获取任务

        Raises:
            JobNotFoundError: 任务不存在或不属于该用户
        """
        job = self.store.get_for_owner(job_id, owner_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def create_job(self, owner_id: str, payload: JobCreate) -> JobResponse:
        cycle_seconds = normalize_cycle_seconds(
            payload.cycle_minutes,
            payload.cycle_seconds,
            default_minutes=self.scheduler_config.default_cycle_minutes,
        )
        job = self.store.create(
            owner_id=owner_id,
            name=payload.name,
            start_name=payload.start_name,
            end_name=payload.end_name,
            start_location=payload.start_location,
            end_location=payload.end_location,
            start_time=payload.start_time,
            end_time=payload.end_time,
            cycle_seconds=cycle_seconds,
            duration_days=payload.duration_days or self.scheduler_config.default_duration_days,
            navigation_type=payload.navigation_type.value,
            avoid_highways=payload.avoid_highways,
            avoid_tolls=payload.avoid_tolls,
            additional_routes=payload.additional_routes,
        )
        return JobResponse.model_validate(job)

    def update_job(self, job_id: str, owner_id: str, payload: JobUpdate) -> JobResponse:
        """更新任务

        运行中的任务只允许修改展示字段；调度相关字段与当前值不同时拒绝。

        Raises:
            JobNotFoundError: 任务不存在
            JobConflictError: 试图修改运行中任务的调度字段
        """
        job = self.get_job(job_id, owner_id)
        changes = self._collect_changes(payload)

        if job.status == JobStatus.RUNNING:
            blocked = [
                key
                for key in changes
                if key in SCHEDULE_FIELDS and getattr(job, key) != changes[key]
            ]
            if blocked:
                raise JobConflictError(job_id, blocked)

        if not changes:
            return JobResponse.model_validate(job)

        updated = self.store.update(job_id, **changes)
        if updated is None:
            raise JobNotFoundError(job_id)
        logger.info("更新任务 id=%s fields=%s", job_id, sorted(changes))
        return JobResponse.model_validate(updated)

    def delete_job(self, job_id: str, owner_id: str) -> None:
        """删除任务：先取消定时器，再删除快照和任务本身"""
        self.get_job(job_id, owner_id)
        try:
            self.scheduler.stop(job_id)
        except JobNotFoundError:
            logger.debug("删除时任务已不存在: id=%s", job_id)
        if not self.store.delete(job_id):
            raise JobNotFoundError(job_id)

    async def start_job(self, job_id: str, owner_id: str) -> JobResponse:
        self.get_job(job_id, owner_id)
        job = await self.scheduler.start(job_id)
        return JobResponse.model_validate(job)

    def stop_job(self, job_id: str, owner_id: str) -> JobResponse:
        self.get_job(job_id, owner_id)
        self.scheduler.stop(job_id)
        return JobResponse.model_validate(self.get_job(job_id, owner_id))

    def pause_job(self, job_id: str, owner_id: str) -> JobResponse:
        self.get_job(job_id, owner_id)
        self.scheduler.pause(job_id)
        return JobResponse.model_validate(self.get_job(job_id, owner_id))

    async def resume_job(self, job_id: str, owner_id: str) -> JobResponse:
        self.get_job(job_id, owner_id)
        job = await self.scheduler.resume(job_id)
        return JobResponse.model_validate(job)

    def list_snapshots(
        self, job_id: str, owner_id: str, route_index: Optional[int] = None
    ) -> List[SnapshotResponse]:
        self.get_job(job_id, owner_id)
        return [
            SnapshotResponse.model_validate(snapshot)
            for snapshot in self.store.list_snapshots(job_id, route_index=route_index)
        ]

    def export_json(self, job_id: str, owner_id: str) -> ExportResponse:
        job = self.get_job(job_id, owner_id)
        return ExportResponse(
            job=JobResponse.model_validate(job),
            snapshots=self.list_snapshots(job_id, owner_id),
        )

    def export_csv(self, job_id: str, owner_id: str) -> str:
        """导出主路线（route_index=0）的时间序列"""
        self.get_job(job_id, owner_id)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for snapshot in self.store.list_snapshots(job_id, route_index=0):
            duration = snapshot.duration_seconds
            writer.writerow(
                [
                    snapshot.collected_at.isoformat(),
                    "" if duration is None else duration,
                    "" if snapshot.distance_meters is None else snapshot.distance_meters,
                    "" if duration is None else int(duration / 60 + 0.5),
                ]
            )
        return buffer.getvalue()

    def _collect_changes(self, payload: JobUpdate) -> Dict[str, Any]:
        data = payload.model_dump(exclude_unset=True)

        cycle_minutes = data.pop("cycle_minutes", None)
        cycle_seconds = data.pop("cycle_seconds", None)
        if cycle_minutes is not None or cycle_seconds is not None:
            data["cycle_seconds"] = normalize_cycle_seconds(
                cycle_minutes,
                cycle_seconds,
                default_minutes=self.scheduler_config.default_cycle_minutes,
            )

        for key in ("start_location", "end_location"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip() or None
        for key in ("start_time", "end_time"):
            if isinstance(data.get(key), datetime) and data[key].tzinfo is None:
                data[key] = data[key].replace(tzinfo=timezone.utc)
        if isinstance(data.get("navigation_type"), TravelMode):
            data["navigation_type"] = data["navigation_type"].value

        # 非空列显式传 null 时视为未修改
        for key in NON_NULLABLE_FIELDS:
            if key in data and data[key] is None:
                data.pop(key)
        return data


class MapService:
    """地图预览与逆地理编码服务"""

    def __init__(self, directions: DirectionsClient):
        self.directions = directions

    async def route_preview(
        self,
        origin: str,
        destination: str,
        mode: Optional[str] = None,
        avoid_highways: bool = False,
        avoid_tolls: bool = False,
    ) -> Optional[RoutePreview]:
        """获取主路线预览，找不到路线时返回 None

        Raises:
            DirectionsConfigurationError: API key 未配置或被拒绝
        """
        self.directions.ensure_configured()
        options = RouteOptions(
            mode=TravelMode.parse(mode),
            avoid_highways=avoid_highways,
            avoid_tolls=avoid_tolls,
        )
        return await self.directions.fetch_primary_route(origin, destination, options)

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[str]:
        self.directions.ensure_configured()
        return await self.directions.reverse_geocode(lat, lng)
