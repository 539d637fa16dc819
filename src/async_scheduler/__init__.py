"""async_scheduler - 进程内异步任务调度器"""

from async_scheduler.common.exceptions import (
    ConfigurationError,
    SchedulerException,
    TaskCancelledError,
    TaskError,
    TaskExecutionError,
    TaskNotFoundError,
    TaskTimeoutError,
)
from async_scheduler.common.logging import setup_logging
from async_scheduler.core import (
    AddTaskOptions,
    AsyncScheduler,
    CancellationSource,
    CancellationToken,
    SchedulerConfig,
    SchedulerEvent,
    SchedulerState,
    Task,
    TaskStatus,
    link_tokens,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncScheduler",
    "AddTaskOptions",
    "SchedulerConfig",
    "SchedulerEvent",
    "SchedulerState",
    "Task",
    "TaskStatus",
    "CancellationSource",
    "CancellationToken",
    "link_tokens",
    "SchedulerException",
    "ConfigurationError",
    "TaskError",
    "TaskNotFoundError",
    "TaskTimeoutError",
    "TaskCancelledError",
    "TaskExecutionError",
    "setup_logging",
]
