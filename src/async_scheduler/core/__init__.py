"""核心层

包含调度器的核心组件：
- 取消令牌：多路取消源的组合
- 队列：任务注册表与优先级队列
- 信号：生命周期事件
- 调度：准入与执行
- 调度器：对外入口与生命周期控制
"""

from .cancellation import CancellationSource, CancellationToken, LinkedCancellationSource, link_tokens
from .dispatcher import Dispatcher
from .models import AddTaskOptions, SchedulerConfig, Task, TaskStatus
from .queue import QueueEntry, TaskQueue, TaskRegistry
from .scheduler import AsyncScheduler, SchedulerState
from .signals import SchedulerEvent, SignalManager

__all__ = [
    # 取消令牌
    "CancellationSource",
    "CancellationToken",
    "LinkedCancellationSource",
    "link_tokens",
    # 模型
    "AddTaskOptions",
    "SchedulerConfig",
    "Task",
    "TaskStatus",
    # 队列
    "QueueEntry",
    "TaskQueue",
    "TaskRegistry",
    # 调度
    "Dispatcher",
    "AsyncScheduler",
    "SchedulerState",
    # 信号
    "SchedulerEvent",
    "SignalManager",
]
