"""采集任务数据访问层

使用 Repository 模式封装任务与快照的数据库操作。
每个方法独立打开并关闭会话，对调度器而言都是同步、原子的单行操作。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy import delete, desc, func, select, update

from ..directions.base import Route
from .models import DatabaseManager, JobStatus, RouteJob, RouteSnapshot, utcnow

logger = logging.getLogger("routewatch.job_store")


class JobStore:
    """采集任务数据访问层

    调度器使用：get / list_running / insert_snapshots / set_status /
    touch_updated_at / set_start_time。
    API 层额外使用：create / update / delete / list_for_owner /
    get_for_owner / list_snapshots。
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def get(self, job_id: str) -> Optional[RouteJob]:
        with self.db_manager.get_session() as session:
            return session.get(RouteJob, job_id)

    def get_for_owner(self, job_id: str, owner_id: str) -> Optional[RouteJob]:
        with self.db_manager.get_session() as session:
            return session.scalars(
                select(RouteJob).where(
                    RouteJob.id == job_id, RouteJob.owner_id == owner_id
                )
            ).first()

    def list_running(self) -> List[RouteJob]:
        with self.db_manager.get_session() as session:
            return list(
                session.scalars(
                    select(RouteJob).where(RouteJob.status == JobStatus.RUNNING.value)
                )
            )

    def list_for_owner(self, owner_id: str) -> List[RouteJob]:
        with self.db_manager.get_session() as session:
            return list(
                session.scalars(
                    select(RouteJob)
                    .where(RouteJob.owner_id == owner_id)
                    .order_by(desc(RouteJob.created_at))
                )
            )

    def create(self, **fields: Any) -> RouteJob:
        """创建任务，状态固定为 pending

        Args:
            fields: RouteJob 的列值，id/status/created_at/updated_at 由本方法生成
        """
        now = utcnow()
        job = RouteJob(
            **fields,
            id=str(uuid.uuid4()),
            status=JobStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        with self.db_manager.get_session() as session:
            session.add(job)
            session.commit()

        logger.info("创建任务 id=%s %s -> %s", job.id, job.start_location, job.end_location)
        return job

    def update(self, job_id: str, **fields: Any) -> Optional[RouteJob]:
        """更新任务字段并刷新 updated_at

        Returns:
            更新后的任务，不存在时返回 None
        """
        with self.db_manager.get_session() as session:
            job = session.get(RouteJob, job_id)
            if job is None:
                return None
            for key, value in fields.items():
                setattr(job, key, value)
            job.updated_at = utcnow()
            session.commit()
            return job

    def delete(self, job_id: str) -> bool:
        """删除任务及其全部快照

        Returns:
            任务存在并被删除时返回 True
        """
        with self.db_manager.get_session() as session:
            removed = session.execute(
                delete(RouteSnapshot).where(RouteSnapshot.job_id == job_id)
            ).rowcount
            deleted = session.execute(
                delete(RouteJob).where(RouteJob.id == job_id)
            ).rowcount
            session.commit()

        if deleted:
            logger.info("删除任务 id=%s snapshots=%d", job_id, removed)
        return bool(deleted)

    def set_status(self, job_id: str, status: JobStatus) -> bool:
        return self._update_columns(job_id, status=JobStatus(status).value)

    def touch_updated_at(self, job_id: str, timestamp: datetime) -> bool:
        return self._update_columns(job_id, updated_at=timestamp)

    def set_start_time(self, job_id: str, timestamp: datetime) -> bool:
        return self._update_columns(job_id, start_time=timestamp)

    def insert_snapshots(
        self, job_id: str, collected_at: datetime, routes: Iterable[Route]
    ) -> int:
        """写入一个采集周期的快照，所有行共享同一个 collected_at

        Returns:
            写入的行数
        """
        rows = [
            RouteSnapshot(
                id=str(uuid.uuid4()),
                job_id=job_id,
                route_index=route.route_index,
                collected_at=collected_at,
                duration_seconds=route.duration_seconds,
                distance_meters=route.distance_meters,
                route_details=route.details(),
            )
            for route in routes
        ]
        if not rows:
            return 0

        with self.db_manager.get_session() as session:
            session.add_all(rows)
            session.commit()
        return len(rows)

    def list_snapshots(
        self, job_id: str, route_index: Optional[int] = None
    ) -> List[RouteSnapshot]:
        """按采集时间升序返回快照"""
        with self.db_manager.get_session() as session:
            query = select(RouteSnapshot).where(RouteSnapshot.job_id == job_id)
            if route_index is not None:
                query = query.where(RouteSnapshot.route_index == route_index)
            query = query.order_by(RouteSnapshot.collected_at, RouteSnapshot.route_index)
            return list(session.scalars(query))

    def count_snapshots(self, job_id: str) -> int:
        with self.db_manager.get_session() as session:
            return session.scalar(
                select(func.count())
                .select_from(RouteSnapshot)
                .where(RouteSnapshot.job_id == job_id)
            ) or 0

    def _update_columns(self, job_id: str, **values: Any) -> bool:
        with self.db_manager.get_session() as session:
            result = session.execute(
                update(RouteJob).where(RouteJob.id == job_id).values(**values)
            )
            session.commit()
            return bool(result.rowcount)
