"""任务模型与调度参数"""
import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..common.config import settings
from ..common.exceptions import ConfigurationError
from .cancellation import CancellationSource, CancellationToken, LinkedCancellationSource


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELLED})


def _validated(model_cls, data: dict):
    """构造 pydantic 模型，校验失败转换为 ConfigurationError"""
    try:
        return model_cls(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(f"参数非法 [{field_name}]: {first.get('msg')}", field=field_name) from e


class SchedulerConfig(BaseModel):
    """调度器配置"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    concurrency: int = Field(default_factory=lambda: settings.SCHEDULER_CONCURRENCY, ge=1, description="最大并发任务数")
    retry: int = Field(default_factory=lambda: settings.SCHEDULER_RETRY, ge=0, description="默认重试次数")
    timeout: int = Field(default_factory=lambda: settings.SCHEDULER_TIMEOUT_MS, ge=0, description="默认超时(毫秒)，0 表示不限时")
    auto_start: bool = Field(default_factory=lambda: settings.SCHEDULER_AUTO_START, description="添加任务后立即尝试调度")

    @classmethod
    def build(cls, config: Optional["SchedulerConfig"] = None, **overrides) -> "SchedulerConfig":
        data = {}
        if config is not None:
            data = {name: getattr(config, name) for name in cls.model_fields}
        data.update({k: v for k, v in overrides.items() if v is not None})
        return _validated(cls, data)


class AddTaskOptions(BaseModel):
    """添加任务的参数"""
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    priority: int = Field(0, description="优先级（数值越大越先执行）")
    retry: Optional[int] = Field(None, ge=0, description="重试次数，覆盖全局默认值")
    timeout: Optional[int] = Field(None, ge=0, description="超时(毫秒)，覆盖全局默认值")
    cancellation_token: Optional[CancellationToken] = Field(None, description="外部取消令牌")

    @field_validator("cancellation_token", mode="before")
    @classmethod
    def unwrap_source(cls, v):
        if isinstance(v, CancellationSource):
            return v.token
        return v

    @classmethod
    def build(cls, options=None, **kwargs) -> "AddTaskOptions":
        if isinstance(options, AddTaskOptions):
            data = {name: getattr(options, name) for name in cls.model_fields}
        elif options is None:
            data = {}
        elif isinstance(options, dict):
            data = dict(options)
        else:
            raise ConfigurationError(f"options 类型不支持: {type(options).__name__}", field="options")
        data.update(kwargs)
        return _validated(cls, data)


def accepts_token(work: Callable) -> bool:
    """work 是否能接收一个位置参数（取消令牌）"""
    try:
        sig = inspect.signature(work)
    except (TypeError, ValueError):
        return False
    positional = (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
        inspect.Parameter.VAR_POSITIONAL,
    )
    return any(p.kind in positional for p in sig.parameters.values())


@dataclass(eq=False)
class Task:
    task_id: str
    work: Callable[..., Any]
    priority: int = 0
    retry: Optional[int] = None
    timeout: Optional[int] = None
    pass_token: bool = False
    attempt: int = 0
    status: TaskStatus = TaskStatus.PENDING
    # 任务自身的取消源（cancel_task 使用）
    source: CancellationSource = field(default_factory=CancellationSource)
    # 自身 / 全局 / 外部 三路组合后的取消源
    link: Optional[LinkedCancellationSource] = None
    result: Any = None
    error: Optional[BaseException] = None
    epoch: int = 0
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def token(self) -> CancellationToken:
        return self.link.token if self.link is not None else self.source.token

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def effective_retry(self, default: int) -> int:
        # 显式的 0 也是覆盖值
        return default if self.retry is None else self.retry

    def effective_timeout(self, default: int) -> int:
        return default if self.timeout is None else self.timeout

    def release_token(self) -> None:
        if self.link is not None:
            self.link.close()

    def to_dict(self):
        return {
            "task_id": self.task_id,
            "priority": self.priority,
            "attempt": self.attempt,
            "retry": self.retry,
            "timeout": self.timeout,
            "status": self.status.value,
            "cancelled": self.token.cancelled,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": repr(self.error) if self.error is not None else None,
        }
