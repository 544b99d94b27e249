from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from routewatch_backend.directions.base import (
    DirectionsConfigurationError,
    Route,
    RouteOptions,
    RoutePreview,
)
from routewatch_backend.storage.job_store import JobStore
from routewatch_backend.storage.models import DatabaseManager, utcnow


async def drain(rounds: int = 50) -> None:
    """让事件循环把已就绪的任务跑完"""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """模拟时钟：sleep 挂起直到 advance 把时间推过截止点"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utcnow()
        self._sleepers: list = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        deadline = self._now + timedelta(seconds=seconds)
        heapq.heappush(self._sleepers, (deadline, next(self._seq), future))
        await future

    def jump(self, seconds: float) -> None:
        """只移动时间，不唤醒任何 sleeper"""
        self._now += timedelta(seconds=seconds)

    async def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        await drain()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            if future.done():
                continue
            self._now = max(self._now, deadline)
            future.set_result(None)
            await drain()
        self._now = target
        await drain()


class FakeDirections:
    """记录调用次数的路线服务替身"""

    def __init__(self, routes: Optional[List[Route]] = None, configured: bool = True):
        self.routes = routes if routes is not None else [
            Route(route_index=0, duration_seconds=900, distance_meters=12000, summary="A1")
        ]
        self.configured = configured
        self.error: Optional[Exception] = None
        self.calls = 0
        self.last_options: Optional[RouteOptions] = None
        self.preview: Optional[RoutePreview] = None
        self.address: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self.configured

    def ensure_configured(self) -> None:
        if not self.configured:
            raise DirectionsConfigurationError("GOOGLE_MAPS_API_KEY not configured")

    async def fetch_routes_for_collection(self, origin, destination, options=None):
        self.calls += 1
        self.last_options = options
        if self.error is not None:
            raise self.error
        return list(self.routes)

    async def fetch_primary_route(self, origin, destination, options=None):
        self.last_options = options
        return self.preview

    async def reverse_geocode(self, lat, lng):
        return self.address


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(str(tmp_path / "routewatch.db"))
    yield manager
    manager.dispose()


@pytest.fixture
def store(db_manager):
    return JobStore(db_manager)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directions():
    return FakeDirections()


def make_job(store: JobStore, **overrides):
    fields = {
        "owner_id": "tester",
        "start_location": "A",
        "end_location": "B",
        "cycle_seconds": 10,
        "duration_days": 7,
    }
    fields.update(overrides)
    return store.create(**fields)
