"""
Common 模块

通用功能：
- config: 配置管理
- logging: 日志配置
- exceptions: 异常定义
- ids: ID 生成
"""

from async_scheduler.common.config import Settings, settings
from async_scheduler.common.exceptions import (
    ConfigurationError,
    SchedulerException,
    TaskCancelledError,
    TaskError,
    TaskExecutionError,
    TaskNotFoundError,
    TaskTimeoutError,
)
from async_scheduler.common.ids import generate_task_id
from async_scheduler.common.logging import setup_logging

__all__ = [
    "Settings",
    "settings",
    "SchedulerException",
    "ConfigurationError",
    "TaskError",
    "TaskNotFoundError",
    "TaskTimeoutError",
    "TaskCancelledError",
    "TaskExecutionError",
    "generate_task_id",
    "setup_logging",
]
