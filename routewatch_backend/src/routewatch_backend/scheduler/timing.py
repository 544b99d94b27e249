"""采集周期与采集窗口的计算规则"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..storage.models import RouteJob

DEFAULT_CYCLE_MINUTES = 60
MIN_CYCLE_MINUTES = 1


def normalize_cycle_seconds(
    cycle_minutes: Optional[int] = None,
    cycle_seconds: Optional[int] = None,
    *,
    default_minutes: int = DEFAULT_CYCLE_MINUTES,
) -> int:
    """把旧版 分钟/秒 双字段统一为秒

    正的 cycle_seconds 优先；否则使用 cycle_minutes × 60（至少 1 分钟）。
    """
    if cycle_seconds is not None and cycle_seconds > 0:
        return int(cycle_seconds)

    minutes = cycle_minutes if cycle_minutes is not None else default_minutes
    return max(int(minutes), MIN_CYCLE_MINUTES) * 60


def compute_cycle_interval(job: RouteJob, min_cycle_seconds: int) -> float:
    """定时器间隔（秒），不低于下限以控制请求频率"""
    return float(max(int(job.cycle_seconds or 0), min_cycle_seconds))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def effective_end_time(job: RouteJob) -> datetime:
    """计算采集窗口的结束时间

    显式 end_time 优先；否则为 窗口起点 + duration_days，
    窗口起点取 start_time，从未启动过的任务退回 created_at。
    """
    if job.end_time is not None:
        return _as_utc(job.end_time)

    anchor = job.start_time or job.created_at
    return _as_utc(anchor) + timedelta(days=job.duration_days)


def is_window_expired(job: RouteJob, now: datetime) -> bool:
    return _as_utc(now) > effective_end_time(job)
