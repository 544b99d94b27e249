"""API v1 路由定义。

此模块包含 RouteWatch API v1 版本提供的所有 FastAPI 路由端点。
任务归属来自 `X-User-Id` 请求头，缺省为 anonymous。
"""

from __future__ import annotations

from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status

from ...directions.base import DirectionsConfigurationError, DirectionsError
from ...scheduler.errors import JobConflictError, JobNotFoundError
from ..schemas import (
    DeleteResponse,
    ExportResponse,
    JobCreate,
    JobResponse,
    JobUpdate,
    ReverseGeocodeResponse,
    RoutePreviewResponse,
    SnapshotResponse,
)
from ..services import JobService, MapService

router = APIRouter(prefix="/api/v1", tags=["jobs"])


def get_job_service(request: Request) -> JobService:
    """依赖注入：获取任务服务实例（在应用 lifespan 中创建）"""

    return request.app.state.job_service


def get_map_service(request: Request) -> MapService:
    """依赖注入：获取地图服务实例"""

    return request.app.state.map_service


def get_owner_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    owner = (x_user_id or "").strip()
    return owner or "anonymous"


def _raise_http(exc: Exception, action: str) -> NoReturn:
    """把领域异常映射为 HTTP 错误"""

    if isinstance(exc, HTTPException):
        raise exc
    if isinstance(exc, JobNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"任务 {exc.job_id} 不存在"
        ) from exc
    if isinstance(exc, JobConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, DirectionsConfigurationError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"路线服务未配置或被拒绝: {exc}",
        ) from exc
    if isinstance(exc, DirectionsError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=f"路线服务错误: {exc}"
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{action}失败: {exc}",
    ) from exc


@router.get("/jobs", response_model=List[JobResponse], summary="获取任务列表")
async def list_jobs(
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return service.list_jobs(owner_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "获取任务列表")


@router.post(
    "/jobs",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="创建采集任务",
    description="创建后状态为 pending，需要调用 start 才会开始采集",
)
async def create_job(
    payload: JobCreate,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return service.create_job(owner_id, payload)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "创建任务")


@router.get("/jobs/{job_id}", response_model=JobResponse, summary="获取任务详情")
async def get_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return JobResponse.model_validate(service.get_job(job_id, owner_id))
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "获取任务")


@router.patch(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="编辑任务",
    description="运行中的任务只能修改名称类字段，修改调度字段返回 409",
)
async def update_job(
    job_id: str,
    payload: JobUpdate,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return service.update_job(job_id, owner_id, payload)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "编辑任务")


@router.delete("/jobs/{job_id}", response_model=DeleteResponse, summary="删除任务及其快照")
async def delete_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        service.delete_job(job_id, owner_id)
        return DeleteResponse()
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "删除任务")


@router.post("/jobs/{job_id}/start", response_model=JobResponse, summary="启动任务")
async def start_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    """启动任务并立即执行一次采集"""

    try:
        return await service.start_job(job_id, owner_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "启动任务")


@router.post("/jobs/{job_id}/stop", response_model=JobResponse, summary="停止任务")
async def stop_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return service.stop_job(job_id, owner_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "停止任务")


@router.post("/jobs/{job_id}/pause", response_model=JobResponse, summary="暂停任务")
async def pause_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return service.pause_job(job_id, owner_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "暂停任务")


@router.post("/jobs/{job_id}/resume", response_model=JobResponse, summary="恢复任务")
async def resume_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    """恢复暂停的任务，非 paused 状态下原样返回"""

    try:
        return await service.resume_job(job_id, owner_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "恢复任务")


@router.get(
    "/jobs/{job_id}/snapshots",
    response_model=List[SnapshotResponse],
    summary="获取任务快照",
)
async def list_snapshots(
    job_id: str,
    route_index: Optional[int] = Query(None, ge=0, description="只返回指定路线"),
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        return service.list_snapshots(job_id, owner_id, route_index=route_index)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "获取快照")


@router.get(
    "/jobs/{job_id}/export",
    response_model=ExportResponse,
    summary="导出任务数据",
    description="format=json 返回任务与全部快照；format=csv 只包含主路线",
)
async def export_job(
    job_id: str,
    format: str = Query("json", pattern="^(json|csv)$", description="导出格式"),
    owner_id: str = Depends(get_owner_id),
    service: JobService = Depends(get_job_service),
):
    try:
        if format == "csv":
            return Response(
                content=service.export_csv(job_id, owner_id),
                media_type="text/csv",
                headers={"Content-Disposition": f'attachment; filename="job-{job_id}.csv"'},
            )
        return service.export_json(job_id, owner_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "导出任务")


@router.get("/route-preview", response_model=RoutePreviewResponse, summary="路线预览")
async def route_preview(
    origin: str = Query(..., min_length=1, description="起点：地址或 lat,lng"),
    destination: str = Query(..., min_length=1, description="终点：地址或 lat,lng"),
    mode: Optional[str] = Query(None, description="driving/walking/transit"),
    avoid_highways: bool = Query(False),
    avoid_tolls: bool = Query(False),
    service: MapService = Depends(get_map_service),
):
    """返回主路线折线的解码点序列"""

    try:
        preview = await service.route_preview(
            origin, destination, mode, avoid_highways=avoid_highways, avoid_tolls=avoid_tolls
        )
        if preview is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="未找到路线")
        return RoutePreviewResponse(
            points=[[lat, lng] for lat, lng in preview.points],
            start=list(preview.start) if preview.start else None,
            end=list(preview.end) if preview.end else None,
            duration_seconds=preview.duration_seconds,
            distance_meters=preview.distance_meters,
        )
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "获取路线预览")


@router.get("/reverse-geocode", response_model=ReverseGeocodeResponse, summary="逆地理编码")
async def reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    service: MapService = Depends(get_map_service),
):
    try:
        return ReverseGeocodeResponse(address=await service.reverse_geocode(lat, lng))
    except Exception as exc:  # noqa: BLE001
        _raise_http(exc, "逆地理编码")
