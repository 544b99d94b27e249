from __future__ import annotations


class SchedulerError(Exception):
    """调度器基础异常类"""


class JobNotFoundError(SchedulerError):
    """控制操作引用了不存在的任务"""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobConflictError(SchedulerError):
    """运行中的任务不允许修改调度相关字段

    Attributes:
        fields: 被拒绝修改的字段名
    """

    def __init__(self, job_id: str, fields: list[str]):
        self.job_id = job_id
        self.fields = sorted(fields)
        super().__init__(
            f"Job {job_id} is running; stop or pause it before changing: "
            + ", ".join(self.fields)
        )
