"""调度组件集合

包含路线采集任务的调度基础设施：
- JobScheduler: 启动/停止/暂停/恢复任务，执行采集周期，重启后恢复定时器
- TimerRegistry: job id 到定时器句柄的注册表
- Clock / SystemClock: 可替换的时钟
- normalize_cycle_seconds / effective_end_time: 周期与采集窗口规则
- JobNotFoundError / JobConflictError: 控制操作的错误类型
"""

from .clock import Clock, SystemClock
from .errors import JobConflictError, JobNotFoundError, SchedulerError
from .job_scheduler import JobScheduler
from .registry import TimerRegistry
from .timing import (
    compute_cycle_interval,
    effective_end_time,
    is_window_expired,
    normalize_cycle_seconds,
)

__all__ = [
    "Clock",
    "JobConflictError",
    "JobNotFoundError",
    "JobScheduler",
    "SchedulerError",
    "SystemClock",
    "TimerRegistry",
    "compute_cycle_interval",
    "effective_end_time",
    "is_window_expired",
    "normalize_cycle_seconds",
]
