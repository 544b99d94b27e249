"""JobScheduler: 路线采集任务的调度与生命周期管理

每个运行中的任务对应一个独立的重复定时器（asyncio.Task），
定时器句柄保存在 TimerRegistry 中：
- 启动/恢复时先取消同 id 的旧定时器再注册新的，保证每个任务最多一个定时器
- 停止/暂停只取消定时器并写状态，已经在执行的采集周期允许写完
- 进程重启后根据持久化的 running 状态重建定时器，状态字段是唯一事实来源

采集周期每次都会重新读取任务并检查状态，这是防止过期 tick
在暂停/停止/删除之后继续写数据的关键步骤。
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional, Set

from ..directions.base import (
    DirectionsConfigurationError,
    DirectionsRetryableError,
    RouteOptions,
    TravelMode,
)
from ..directions.client import DirectionsClient
from ..storage.job_store import JobStore
from ..storage.models import JobStatus, RouteJob
from .clock import Clock, SystemClock
from .errors import JobNotFoundError
from .registry import TimerRegistry
from .timing import compute_cycle_interval, is_window_expired


class JobScheduler:
    """路线采集任务调度器"""

    def __init__(
        self,
        store: JobStore,
        directions: DirectionsClient,
        clock: Optional[Clock] = None,
        min_cycle_seconds: int = 10,
    ):
        """初始化调度器

        Args:
            store: 任务与快照的数据访问层
            directions: 路线服务客户端
            clock: 时钟，默认使用系统时间
            min_cycle_seconds: 采集周期下限（秒）
        """
        self._store = store
        self._directions = directions
        self._clock: Clock = clock or SystemClock()
        self._min_cycle_seconds = max(1, min_cycle_seconds)
        self._registry = TimerRegistry()

        self._log = logging.getLogger("routewatch.scheduler")

    @property
    def registry(self) -> TimerRegistry:
        return self._registry

    async def start(self, job_id: str) -> RouteJob:
        """启动任务（幂等）

        注册重复定时器，并在返回前立即执行一次采集周期，
        调用方无需等待完整周期即可看到第一条数据。

        Raises:
            JobNotFoundError: 任务不存在
            DirectionsConfigurationError: API key 缺失，或首个采集周期被服务方拒绝
        """
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status == JobStatus.RUNNING:
            self._log.info("任务已在运行，忽略启动: id=%s", job_id)
            return job

        # 配置错误必须在改动任何状态之前暴露给调用方
        self._directions.ensure_configured()

        previous_status = JobStatus(job.status)
        previous_start_time = job.start_time

        self._registry.cancel(job_id)
        self._store.set_status(job_id, JobStatus.RUNNING)

        # 暂停后恢复沿用原窗口起点，重新启动已完成的任务则开启新窗口
        restamp = job.start_time is None or previous_status is JobStatus.COMPLETED
        if restamp:
            self._store.set_start_time(job_id, self._clock.now())

        interval = compute_cycle_interval(job, self._min_cycle_seconds)
        handle = self._register_timer(job_id, interval)
        self._log.info(
            "启动任务: id=%s from=%s interval=%.0fs",
            job_id,
            previous_status.value,
            interval,
        )

        try:
            await self.run_collection_cycle(job_id, raise_fatal=True)
        except DirectionsConfigurationError:
            # 只回滚仍由本次启动持有的定时器
            if self._registry.timers.get(job_id) is not handle:
                self._log.warning(
                    "首个采集周期配置错误，任务已被其他操作接管，跳过回滚: id=%s", job_id
                )
                raise
            self._log.error("首个采集周期配置错误，回滚启动: id=%s", job_id)
            self._registry.cancel(job_id)
            current = self._store.get(job_id)
            if current is not None and current.status == JobStatus.RUNNING:
                self._store.set_status(job_id, previous_status)
                if restamp:
                    self._store.set_start_time(job_id, previous_start_time)
            raise

        return self._store.get(job_id) or job

    def stop(self, job_id: str) -> None:
        """停止任务，状态置为 completed（幂等）

        Raises:
            JobNotFoundError: 任务不存在（定时器仍会被取消）
        """
        self._halt(job_id, JobStatus.COMPLETED, strict=True)

    def pause(self, job_id: str) -> None:
        """暂停任务，状态置为 paused（幂等）

        Raises:
            JobNotFoundError: 任务不存在（定时器仍会被取消）
        """
        self._halt(job_id, JobStatus.PAUSED, strict=True)

    async def resume(self, job_id: str) -> RouteJob:
        """恢复暂停的任务，其他状态下不做任何事

        Raises:
            JobNotFoundError: 任务不存在
        """
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status != JobStatus.PAUSED:
            self._log.info("任务未暂停，忽略恢复: id=%s status=%s", job_id, job.status)
            return job

        return await self.start(job_id)

    async def restore_running_jobs(self) -> int:
        """进程启动时重建定时器

        为每个持久化状态为 running 的任务注册定时器并立即执行一次采集周期，
        不改写状态。

        Returns:
            恢复的任务数量
        """
        jobs = self._store.list_running()
        if not jobs:
            self._log.info("没有需要恢复的任务")
            return 0

        if not self._directions.is_configured:
            self._log.warning(
                "GOOGLE_MAPS_API_KEY 未配置，恢复的 %d 个任务将无法采集数据", len(jobs)
            )

        for job in jobs:
            interval = compute_cycle_interval(job, self._min_cycle_seconds)
            self._register_timer(job.id, interval)
            self._log.info("恢复任务: id=%s interval=%.0fs", job.id, interval)

        await asyncio.gather(*(self._guarded_cycle(job.id) for job in jobs))
        return len(jobs)

    def list_active_job_ids(self) -> Set[str]:
        return self._registry.job_ids()

    async def shutdown(self) -> None:
        """取消全部定时器并等待其退出，不修改任务状态"""
        handles = self._registry.cancel_all()
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)
        self._log.info("Scheduler stopped, %d timers cancelled", len(handles))

    async def run_collection_cycle(self, job_id: str, *, raise_fatal: bool = False) -> int:
        """执行一次采集周期

        Args:
            job_id: 任务 ID
            raise_fatal: 为 True 时不吞掉 DirectionsConfigurationError（手动启动时使用）

        Returns:
            写入的快照行数
        """
        job = self._store.get(job_id)
        if job is None or job.status != JobStatus.RUNNING:
            self._log.debug("任务不存在或未运行，跳过本次采集: id=%s", job_id)
            return 0

        if is_window_expired(job, self._clock.now()):
            self._log.info("采集窗口已结束，自动停止任务: id=%s", job_id)
            self._halt(job_id, JobStatus.COMPLETED, strict=False)
            return 0

        try:
            routes = await self._directions.fetch_routes_for_collection(
                job.start_location, job.end_location, self._route_options(job)
            )
            if not routes:
                self._log.warning(
                    "未获取到路线，等待下次采集: id=%s %s -> %s",
                    job_id,
                    job.start_location,
                    job.end_location,
                )
                return 0

            collected_at: datetime = self._clock.now()
            written = self._store.insert_snapshots(job_id, collected_at, routes)
            self._store.touch_updated_at(job_id, collected_at)
            self._log.info(
                "采集完成: id=%s routes=%d duration=%s",
                job_id,
                written,
                routes[0].duration_seconds,
            )
            return written
        except DirectionsConfigurationError as exc:
            if raise_fatal:
                raise
            self._log.error("路线服务配置错误: id=%s error=%s", job_id, exc)
        except DirectionsRetryableError as exc:
            self._log.warning("路线服务暂时不可用: id=%s error=%s", job_id, exc)
        except Exception as exc:  # noqa: BLE001 - 单次失败不能影响后续 tick
            self._log.exception("采集周期失败: id=%s error=%s", job_id, exc)
        return 0

    def _halt(self, job_id: str, status: JobStatus, *, strict: bool) -> None:
        cancelled = self._registry.cancel(job_id)
        if not self._store.set_status(job_id, status):
            if strict:
                raise JobNotFoundError(job_id)
            return

        self._log.info(
            "任务已%s: id=%s timer_cancelled=%s",
            "暂停" if status is JobStatus.PAUSED else "停止",
            job_id,
            cancelled,
        )

    def _register_timer(self, job_id: str, interval: float) -> asyncio.Task:
        handle = asyncio.create_task(
            self._timer_loop(job_id, interval), name=f"route-job:{job_id}"
        )
        self._registry.register(job_id, handle)
        return handle

    async def _timer_loop(self, job_id: str, interval: float) -> None:
        handle = asyncio.current_task()
        try:
            while True:
                await self._clock.sleep(interval)
                # 取消定时器只阻止后续 tick，已开始的采集周期允许写完
                await asyncio.shield(self._guarded_cycle(job_id))
        except asyncio.CancelledError:
            self._log.debug("定时器已取消: id=%s", job_id)
            raise
        finally:
            if handle is not None:
                self._registry.discard(job_id, handle)

    async def _guarded_cycle(self, job_id: str) -> None:
        try:
            await self.run_collection_cycle(job_id)
        except Exception as exc:  # noqa: BLE001 - 读库失败同样只记录
            self._log.exception("采集周期异常: id=%s error=%s", job_id, exc)

    @staticmethod
    def _route_options(job: RouteJob) -> RouteOptions:
        return RouteOptions(
            mode=TravelMode.parse(job.navigation_type),
            avoid_highways=bool(job.avoid_highways),
            avoid_tolls=bool(job.avoid_tolls),
            alternatives=max(0, job.additional_routes or 0),
        )
