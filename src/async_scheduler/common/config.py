"""应用配置模块

提供统一的配置管理，支持环境变量和 .env 文件。
调度器构造参数未显式给出时，默认值从这里读取。
"""

import os
from functools import cached_property
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path:
    """查找项目根目录（包含 .env 的目录，或最顶层的 pyproject.toml）"""
    current = Path(__file__).resolve()

    for parent in current.parents:
        if (parent / ".env").exists():
            return parent

    root = None
    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            root = parent

    if root:
        return root

    return Path.cwd()


class Settings(BaseSettings):
    """应用配置类"""

    # === 调度器默认值 ===
    SCHEDULER_CONCURRENCY: int = Field(default=5)
    SCHEDULER_RETRY: int = Field(default=0)
    SCHEDULER_TIMEOUT_MS: int = Field(default=0)
    SCHEDULER_AUTO_START: bool = Field(default=False)

    # === 日志配置 ===
    LOG_LEVEL: str = Field(default="INFO")
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE_PATH: str = Field(default="")

    # === 路径配置 ===
    BASE_DIR: str = Field(default_factory=lambda: str(_find_project_root()))

    @cached_property
    def log_file(self) -> str:
        """日志文件路径，未配置时落在 data/logs 下"""
        if self.LOG_FILE_PATH:
            return self.LOG_FILE_PATH
        return os.path.join(self.BASE_DIR, "data", "logs", "scheduler.log")

    model_config = SettingsConfigDict(
        env_file=str(_find_project_root() / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_scheduler_defaults(self) -> "Settings":
        """验证调度器默认值"""
        if self.SCHEDULER_CONCURRENCY < 1:
            raise ValueError("SCHEDULER_CONCURRENCY 必须 >= 1")
        if self.SCHEDULER_RETRY < 0:
            raise ValueError("SCHEDULER_RETRY 必须 >= 0")
        if self.SCHEDULER_TIMEOUT_MS < 0:
            raise ValueError("SCHEDULER_TIMEOUT_MS 必须 >= 0（0 表示不限时）")
        return self


# 全局配置实例
settings = Settings()
