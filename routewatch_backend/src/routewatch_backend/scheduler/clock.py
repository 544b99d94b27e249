"""调度器使用的时钟抽象

调度器只通过 Clock 读取当前时间和等待，测试时可替换为模拟时钟。
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """返回时区感知的当前 UTC 时间"""
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """基于系统时间与 asyncio.sleep 的时钟"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
