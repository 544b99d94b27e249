"""配置加载器模块

分离 YAML 文件、环境变量与默认值三种配置源的加载逻辑，
按优先级深度合并后交给 ConfigParser 转换为 Settings。
"""

from __future__ import annotations

import logging
import os
import yaml
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from .settings import (
    DirectionsConfig,
    SchedulerConfig,
    ServerConfig,
    Settings,
    StorageConfig,
)

logger = logging.getLogger("routewatch.config.loaders")

CONFIG_FILE_NAME = "routewatch.yaml"


class ConfigLoader(ABC):
    """配置加载器抽象基类"""

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """加载配置数据

        Returns:
            配置数据字典
        """
        raise NotImplementedError

    @abstractmethod
    def is_available(self) -> bool:
        """检查配置源是否可用"""
        raise NotImplementedError


class YamlConfigLoader(ConfigLoader):
    """YAML 配置文件加载器

    未显式指定路径时，从包所在目录开始向上查找 routewatch.yaml。
    """

    def __init__(self, file_path: Path | str | None = None):
        self.file_path = Path(file_path) if file_path else self._discover_config_path()
        logger.debug("YAML 配置文件路径: %s", self.file_path)

    def _discover_config_path(self) -> Path:
        start = Path(__file__).resolve()
        for parent in start.parents:
            candidate = parent / CONFIG_FILE_NAME
            if candidate.exists():
                logger.info("发现配置文件: %s", candidate)
                return candidate

        # 回退到工作目录
        return Path.cwd() / CONFIG_FILE_NAME

    def is_available(self) -> bool:
        return self.file_path.exists()

    def load(self) -> Dict[str, Any]:
        if not self.is_available():
            logger.warning("配置文件不存在: %s", self.file_path)
            return {}

        try:
            content = self.file_path.read_text(encoding="utf-8")
            data = yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("加载配置文件失败: %s", e)
            return {}

        if not isinstance(data, dict):
            logger.error("配置文件顶层必须是映射: %s", self.file_path)
            return {}

        logger.info("成功加载配置文件: %s", self.file_path)
        return data


class EnvironmentConfigLoader(ConfigLoader):
    """环境变量配置加载器

    支持的变量：
    - ROUTEWATCH_DB_PATH -> storage.db_path
    - ROUTEWATCH_LOG_LEVEL -> log_level
    - ROUTEWATCH_MIN_CYCLE_SECONDS -> scheduler.min_cycle_seconds
    - ROUTEWATCH_PORT -> server.port
    - GOOGLE_MAPS_API_KEY（或 ROUTEWATCH_GOOGLE_MAPS_API_KEY）-> directions.api_key
    """

    _MAPPING = {
        "db_path": ("storage", "db_path"),
        "log_level": (None, "log_level"),
        "min_cycle_seconds": ("scheduler", "min_cycle_seconds"),
        "port": ("server", "port"),
        "google_maps_api_key": ("directions", "api_key"),
    }

    def __init__(self, prefix: str = "ROUTEWATCH_", environ: Optional[Dict[str, str]] = None):
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def is_available(self) -> bool:
        return "GOOGLE_MAPS_API_KEY" in self._environ or any(
            key.startswith(self.prefix) for key in self._environ
        )

    def load(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        if "GOOGLE_MAPS_API_KEY" in self._environ:
            config.setdefault("directions", {})["api_key"] = self._environ[
                "GOOGLE_MAPS_API_KEY"
            ]

        for key, value in self._environ.items():
            if not key.startswith(self.prefix):
                continue

            config_key = key[len(self.prefix):].lower()
            target = self._MAPPING.get(config_key)
            if target is None:
                logger.debug("忽略未知环境变量: %s", key)
                continue

            section, field = target
            if section is None:
                config[field] = value
            else:
                config.setdefault(section, {})[field] = value

        if config:
            logger.info("从环境变量加载了 %d 个配置节", len(config))

        return config


class DefaultConfigLoader(ConfigLoader):
    """默认配置加载器"""

    def is_available(self) -> bool:
        return True

    def load(self) -> Dict[str, Any]:
        return Settings().model_dump()


class CompositeConfigLoader(ConfigLoader):
    """组合配置加载器

    按优先级顺序合并多个配置源的数据。
    """

    def __init__(self, loaders: List[ConfigLoader]):
        """初始化组合加载器

        Args:
            loaders: 配置加载器列表，按优先级从低到高排序
        """
        self.loaders = loaders

    def is_available(self) -> bool:
        return any(loader.is_available() for loader in self.loaders)

    def load(self) -> Dict[str, Any]:
        merged_config: Dict[str, Any] = {}

        for loader in self.loaders:
            if loader.is_available():
                merged_config = self._deep_merge(merged_config, loader.load())
                logger.debug("合并配置: %s", type(loader).__name__)

        return merged_config

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


class ConfigParser:
    """配置解析器

    负责将合并后的原始配置转换为 Settings 对象。
    各配置节独立校验，某一节无效时只有该节回退默认值。
    """

    _SECTIONS: Dict[str, Type[BaseModel]] = {
        "directions": DirectionsConfig,
        "scheduler": SchedulerConfig,
        "storage": StorageConfig,
        "server": ServerConfig,
    }

    @staticmethod
    def parse(config_data: Dict[str, Any]) -> Settings:
        sections = {
            name: ConfigParser._parse_section(name, model, config_data.get(name))
            for name, model in ConfigParser._SECTIONS.items()
        }
        settings = Settings(
            log_level=ConfigParser._parse_log_level(config_data.get("log_level")),
            **sections,
        )

        if not settings.directions.is_configured:
            logger.warning(
                "GOOGLE_MAPS_API_KEY 未配置，路线采集与预览将不可用"
            )

        return settings

    @staticmethod
    def _parse_section(name: str, model: Type[BaseModel], data: Any) -> BaseModel:
        """解析单个配置节

        Returns:
            配置节对象，数据无效时返回该节的默认配置
        """
        if data is None:
            return model()
        if not isinstance(data, dict):
            logger.warning("配置节 %s 必须是映射，使用默认配置", name)
            return model()

        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error("配置节 %s 解析失败，使用默认配置: %s", name, e)
            return model()

    @staticmethod
    def _parse_log_level(value: Any) -> str:
        default = Settings.model_fields["log_level"].default
        if value is None:
            return default

        level = str(value).strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            logger.warning("无效的日志级别 %r，使用 %s", value, default)
            return default
        return level


def create_default_config_loader(
    yaml_path: Path | str | None = None,
) -> CompositeConfigLoader:
    """创建默认的配置加载器

    按优先级顺序：默认配置 < YAML文件 < 环境变量
    """
    loaders = [
        DefaultConfigLoader(),  # 最低优先级
        YamlConfigLoader(yaml_path),  # 中等优先级
        EnvironmentConfigLoader(),  # 最高优先级
    ]

    return CompositeConfigLoader(loaders)
