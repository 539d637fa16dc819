"""
调度器异常模块

任务失败通过事件上报，只有配置错误会同步抛给调用方。
"""

from __future__ import annotations

# =============================================================================
# 基础异常类
# =============================================================================


class SchedulerException(Exception):
    """调度器异常基类"""

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigurationError(SchedulerException):
    """配置错误异常（构造参数或 add 参数非法）"""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message, error_code="CONFIGURATION_ERROR")


# =============================================================================
# 任务相关异常
# =============================================================================


class TaskError(SchedulerException):
    """任务错误基类"""

    def __init__(self, message: str, task_id: str | None = None, error_code: str | None = None):
        self.task_id = task_id
        super().__init__(message, error_code=error_code)


class TaskNotFoundError(TaskError):
    """任务不存在"""

    def __init__(self, task_id: str):
        super().__init__(f"任务 {task_id} 不存在", task_id=task_id, error_code="TASK_NOT_FOUND")


class TaskTimeoutError(TaskError, TimeoutError):
    """任务超时（由调度器在超时计时器先触发时产生）"""

    def __init__(self, task_id: str | None, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"任务 {task_id} 超时，超时时间 {timeout_ms} 毫秒",
            task_id=task_id,
            error_code="TASK_TIMEOUT",
        )


class TaskCancelledError(TaskError):
    """任务已取消（取消令牌先于任务完成触发）"""

    def __init__(self, task_id: str | None = None, reason: str | None = None):
        self.reason = reason
        message = f"任务 {task_id} 已取消" if task_id else "任务已取消"
        if reason:
            message += f": {reason}"
        super().__init__(message, task_id=task_id, error_code="TASK_CANCELLED")


class TaskExecutionError(TaskError):
    """任务执行错误"""

    def __init__(self, message: str, task_id: str | None = None):
        full_message = f"任务执行失败: {message}"
        if task_id:
            full_message += f" (task_id: {task_id})"
        super().__init__(full_message, task_id=task_id, error_code="TASK_EXECUTION_ERROR")
