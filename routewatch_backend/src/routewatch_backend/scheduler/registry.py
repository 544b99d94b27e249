"""TimerRegistry: 任务定时器注册表"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Set

logger = logging.getLogger("routewatch.scheduler.registry")


class TimerRegistry:
    """任务定时器注册表

    维护 job id 到可取消定时器句柄（asyncio.Task）的映射。
    某个 id 在表中，当且仅当调度器认为自己持有该任务的活动定时器。

    Attributes:
        timers: Key 为 job id，value 为重复执行的定时器 Task
    """

    def __init__(self):
        self.timers: Dict[str, asyncio.Task] = {}

    def register(self, job_id: str, handle: asyncio.Task) -> None:
        """注册定时器，已存在的同 id 定时器会先被取消

        保证同一任务任何时刻最多一个活动定时器。
        """
        self.cancel(job_id)
        self.timers[job_id] = handle

    def cancel(self, job_id: str) -> bool:
        """取消并移除定时器

        Returns:
            存在并被取消时返回 True，不存在时返回 False
        """
        handle = self.timers.pop(job_id, None)
        if handle is None:
            return False

        handle.cancel()
        logger.debug("取消定时器: job=%s", job_id)
        return True

    def discard(self, job_id: str, handle: asyncio.Task) -> None:
        """仅当表中仍是该句柄时移除，用于定时器自行退出"""
        if self.timers.get(job_id) is handle:
            del self.timers[job_id]

    def job_ids(self) -> Set[str]:
        return set(self.timers)

    def cancel_all(self) -> list[asyncio.Task]:
        """取消全部定时器

        Returns:
            被取消的句柄，调用方可等待它们结束
        """
        handles = list(self.timers.values())
        self.timers.clear()
        for handle in handles:
            handle.cancel()
        return handles

    def __len__(self) -> int:
        return len(self.timers)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self.timers
