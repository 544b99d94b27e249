from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Optional
import logging

logger = logging.getLogger("routewatch.config")

# 示例配置文件中的占位值，视同未配置
PLACEHOLDER_API_KEY = "your_api_key_here"


class DirectionsConfig(BaseModel):
    api_key: str = Field(default="")
    directions_url: str = Field(
        default="https://maps.googleapis.com/maps/api/directions/json"
    )
    geocode_url: str = Field(
        default="https://maps.googleapis.com/maps/api/geocode/json"
    )
    timeout_seconds: float = Field(default=15.0, gt=0)
    # Google Directions 单次请求最多返回 3 条候选路线
    max_routes: int = Field(default=3, ge=1, le=3)

    @property
    def is_configured(self) -> bool:
        key = (self.api_key or "").strip()
        return bool(key) and key != PLACEHOLDER_API_KEY


class SchedulerConfig(BaseModel):
    min_cycle_seconds: int = Field(default=10, ge=1)
    default_cycle_minutes: int = Field(default=60, ge=1)
    default_duration_days: int = Field(default=7, ge=1)


class StorageConfig(BaseModel):
    db_path: str = Field(default="./data/routewatch.db")
    enable_wal: bool = Field(default=True)


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class Settings(BaseModel):
    log_level: str = Field(default="INFO")
    directions: DirectionsConfig = Field(default_factory=DirectionsConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """获取全局配置实例

    按 默认值 < routewatch.yaml < 环境变量 的优先级合并，首次调用后缓存。
    """
    global _settings
    if _settings is None:
        from .loaders import ConfigParser, create_default_config_loader

        _settings = ConfigParser.parse(create_default_config_loader().load())
    return _settings


def reset_settings() -> None:
    """清除缓存的配置（主要用于测试）"""
    global _settings
    _settings = None
