"""持久化组件集合

- RouteJob / RouteSnapshot: 采集任务与路线快照表
- JobStatus: 任务状态枚举
- DatabaseManager: engine 与会话工厂
- JobStore: 任务与快照的数据访问层
"""

from .models import Base, DatabaseManager, JobStatus, RouteJob, RouteSnapshot, utcnow
from .job_store import JobStore

__all__ = [
    "Base",
    "DatabaseManager",
    "JobStatus",
    "JobStore",
    "RouteJob",
    "RouteSnapshot",
    "utcnow",
]
