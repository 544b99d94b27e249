"""RouteWatch 后端核心骨架

- FastAPI 实例
- JobScheduler 集成（应用启动/关闭生命周期），启动时恢复 running 任务的定时器
- RESTful API 接口
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api.services import JobService, MapService
from .api.v1 import router as api_v1_router
from .config.settings import Settings, get_settings
from .directions.client import DirectionsClient
from .scheduler.clock import Clock
from .scheduler.job_scheduler import JobScheduler
from .storage.job_store import JobStore
from .storage.models import DatabaseManager
from .utils.logging import setup_logging

logger = setup_logging()


def _log_restore_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("恢复运行中任务失败: %s", exc, exc_info=exc)
    else:
        logger.info("已恢复 %d 个运行中任务", task.result())


def create_app(
    settings: Optional[Settings] = None,
    directions: Optional[DirectionsClient] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """创建应用实例

    Args:
        settings: 配置，默认读取 get_settings()
        directions: 路线服务客户端，传入时由调用方负责关闭（测试注入用）
        clock: 调度器时钟，默认系统时间
    """
    settings = settings or get_settings()
    logger.setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: D401 (fastapi 兼容)
        """应用生命周期：初始化存储与调度器，恢复定时器 & 关闭清理。"""
        logger.info("Application starting ...")

        db_manager = DatabaseManager(
            settings.storage.db_path, enable_wal=settings.storage.enable_wal
        )
        store = JobStore(db_manager)
        client = directions or DirectionsClient(settings.directions)
        if not client.is_configured:
            logger.warning("GOOGLE_MAPS_API_KEY 未配置，启动任务和路线预览将不可用")

        scheduler = JobScheduler(
            store,
            client,
            clock=clock,
            min_cycle_seconds=settings.scheduler.min_cycle_seconds,
        )
        app.state.settings = settings
        app.state.scheduler = scheduler
        app.state.job_service = JobService(store, scheduler, settings.scheduler)
        app.state.map_service = MapService(client)

        # 后台恢复，不阻塞服务就绪
        restore_task = asyncio.create_task(
            scheduler.restore_running_jobs(), name="restore-running-jobs"
        )
        restore_task.add_done_callback(_log_restore_result)
        logger.info("Application started")

        try:
            yield
        finally:
            logger.info("Application shutting down ...")
            if not restore_task.done():
                restore_task.cancel()
                await asyncio.gather(restore_task, return_exceptions=True)
            await scheduler.shutdown()
            if directions is None:
                await client.aclose()
            db_manager.dispose()

    app = FastAPI(
        title="RouteWatch Backend",
        description="RouteWatch 路线通行时间采集 API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_v1_router)

    @app.get("/", summary="健康检查 / Hello")
    async def root():
        return {"message": "Hello RouteWatch"}

    @app.get("/status")
    async def get_status(request: Request) -> dict[str, Any]:
        """获取调度器状态信息。

        返回:
            包含活动定时器的任务 ID 列表等信息的字典
        """
        scheduler: Optional[JobScheduler] = getattr(request.app.state, "scheduler", None)
        active = sorted(scheduler.list_active_job_ids()) if scheduler else []
        return {
            "message": "RouteWatch Backend Service is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "scheduler_running": scheduler is not None,
            "active_jobs": len(active),
            "active_job_ids": active,
        }

    return app


app = create_app()


# 可选：uvicorn 直接运行入口
if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "routewatch_backend.app:app",
        host=_settings.server.host,
        port=_settings.server.port,
    )
