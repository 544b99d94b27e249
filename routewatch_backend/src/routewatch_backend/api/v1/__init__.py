"""RouteWatch API v1：路线采集任务、快照导出与地图预览接口。

具体路由定义在 `routes` 模块。
"""

from __future__ import annotations

from .routes import router

__all__ = ["router"]
