"""路线采集任务数据模型

本模块定义采集任务（RouteJob）与路线快照（RouteSnapshot）两张表，
使用 SQLAlchemy ORM 实现，并提供 DatabaseManager 管理连接与会话。
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    create_engine,
    event,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    sessionmaker,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """时区感知的 DateTime

    SQLite 不保存时区信息：写入时统一转换为 naive UTC，读出时补回 UTC 时区，
    保证同一周期写入的 collected_at 读出后仍然严格相等。
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class JobStatus(str, Enum):
    """采集任务状态

    pending -> running -> {paused, completed}；paused -> running；
    completed -> running（重新启动）。
    """

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


# SQLAlchemy 基类（Typed Declarative）
class Base(DeclarativeBase):
    pass


class RouteJob(Base):
    """采集任务表

    字段说明：
    - start_location / end_location: 路线起终点，文本地址或 "lat,lng"
    - name / start_name / end_name: 展示用名称，与实际路线参数相互独立
    - cycle_seconds: 采集周期（秒），唯一的周期字段
    - start_time: 采集窗口起点，配合 duration_days 计算隐式结束时间
    - end_time: 显式结束时间，设置后优先于 duration_days
    - additional_routes: 额外备选路线数量（已弃用，保留兼容）
    - status: 任务状态，决定进程重启后是否恢复定时器
    """

    __tablename__ = "route_jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True, comment="任务唯一标识符")
    owner_id: Mapped[str] = mapped_column(
        String, nullable=False, default="anonymous", index=True, comment="所属用户"
    )

    # 展示信息
    name: Mapped[Optional[str]] = mapped_column(String, comment="任务标题")
    start_name: Mapped[Optional[str]] = mapped_column(String, comment="起点展示名")
    end_name: Mapped[Optional[str]] = mapped_column(String, comment="终点展示名")

    # 路线参数
    start_location: Mapped[str] = mapped_column(Text, nullable=False, comment="起点")
    end_location: Mapped[str] = mapped_column(Text, nullable=False, comment="终点")
    navigation_type: Mapped[str] = mapped_column(
        String, nullable=False, default="driving", comment="出行方式：driving/walking/transit"
    )
    avoid_highways: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    avoid_tolls: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    additional_routes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="额外备选路线数量（已弃用）"
    )

    # 调度参数
    cycle_seconds: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3600, comment="采集周期（秒）"
    )
    start_time: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True, comment="采集窗口起点"
    )
    end_time: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True, comment="显式结束时间"
    )
    duration_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=7, comment="采集天数"
    )

    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default=JobStatus.PENDING.value,
        index=True,
        comment="任务状态：pending/running/paused/completed",
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, comment="更新时间"
    )

    def __repr__(self) -> str:
        return (
            f"<RouteJob("
            f"id={self.id[:8]}, "
            f"status={self.status}, "
            f"cycle_seconds={self.cycle_seconds})>"
        )


class RouteSnapshot(Base):
    """路线快照表

    每个采集周期为每条候选路线写入一行；同一周期的所有行共享 collected_at，
    图表与 CSV 导出依赖它把同一周期的观测关联起来。
    """

    __tablename__ = "route_snapshots"

    id: Mapped[str] = mapped_column(String, primary_key=True, comment="快照唯一标识符")
    job_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("route_jobs.id", ondelete="CASCADE"),
        nullable=False,
        comment="所属采集任务",
    )
    route_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="0=主路线，1..N=备选路线"
    )
    collected_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, comment="采集时间"
    )
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, comment="时长（秒）")
    distance_meters: Mapped[Optional[int]] = mapped_column(Integer, comment="距离（米）")
    route_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, comment="路线摘要、逐步导航与几何信息"
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, comment="写入时间"
    )

    __table_args__ = (
        Index("idx_snapshots_job_collected", "job_id", "collected_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RouteSnapshot("
            f"job_id={self.job_id[:8]}, "
            f"route_index={self.route_index}, "
            f"collected_at={self.collected_at})>"
        )


class DatabaseManager:
    """数据库管理器

    持有 engine 与会话工厂，初始化时自动创建表结构。
    由应用的组合根创建并注入，不再使用全局单例。
    """

    def __init__(self, db_path: str = "routewatch.db", enable_wal: bool = True):
        """初始化数据库管理器

        Args:
            db_path: SQLite 数据库文件路径
            enable_wal: 是否开启 WAL 日志模式
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
            echo=False,  # 设为 True 可查看 SQL 语句
        )

        @event.listens_for(self.engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            if enable_wal:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        Base.metadata.create_all(self.engine, checkfirst=True)
        # 关闭会话后仍需读取对象属性
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def get_session(self):
        """获取数据库会话"""
        return self.Session()

    def dispose(self) -> None:
        self.engine.dispose()
