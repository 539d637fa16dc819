"""
信号系统 - 调度生命周期事件

特性:
- 固定的事件类型，每种事件的参数形状固定
- 按注册顺序同步调用处理器
- 错误隔离：处理器异常只记录日志，不影响调度
- 处理器返回协程时交给事件循环异步执行，异常同样记录

事件参数:
    start(task_id)
    success(task_id, result)
    error(task_id, error)
    retry(task_id, attempt, error)
    finish()
    pause()
    resume()
"""
import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set, Union

from loguru import logger

from ..common.exceptions import ConfigurationError


class SchedulerEvent(str, Enum):
    START = "start"
    SUCCESS = "success"
    ERROR = "error"
    RETRY = "retry"
    FINISH = "finish"
    PAUSE = "pause"
    RESUME = "resume"


EventLike = Union[SchedulerEvent, str]


def _coerce_event(event: EventLike) -> SchedulerEvent:
    try:
        return SchedulerEvent(event)
    except ValueError:
        raise ConfigurationError(f"未知事件类型: {event!r}", field="event") from None


@dataclass
class SignalReceiver:
    """信号接收器"""
    callback: Callable

    @property
    def name(self) -> str:
        return getattr(self.callback, "__name__", repr(self.callback))

    def invoke(self, *args) -> Any:
        return self.callback(*args)


class SignalManager:
    """信号管理器"""

    def __init__(self):
        self._receivers: Dict[SchedulerEvent, List[SignalReceiver]] = {}
        self._pending: Set[asyncio.Task] = set()
        self._stats = {
            "signals_sent": 0,
            "handlers_invoked": 0,
            "errors": 0,
        }

    def connect(self, event: EventLike, callback: Callable) -> None:
        """
        连接信号处理器

        Args:
            event: 事件类型（枚举或其字符串值）
            callback: 回调函数（支持同步/异步）
        """
        event = _coerce_event(event)
        if not callable(callback):
            raise ConfigurationError("事件处理器必须是可调用对象", field="handler")
        receiver = SignalReceiver(callback=callback)
        self._receivers.setdefault(event, []).append(receiver)
        logger.debug(f"信号连接: {event.value} <- {receiver.name}")

    def disconnect(self, event: EventLike, callback: Callable) -> bool:
        """断开信号处理器（只移除最早注册的一个）"""
        event = _coerce_event(event)
        receivers = self._receivers.get(event, [])
        for i, receiver in enumerate(receivers):
            if receiver.callback == callback:
                del receivers[i]
                logger.debug(f"信号断开: {event.value} -x- {receiver.name}")
                return True
        return False

    def disconnect_all(self, event: Optional[EventLike] = None) -> int:
        """断开所有处理器"""
        if event is not None:
            event = _coerce_event(event)
            count = len(self._receivers.get(event, []))
            self._receivers[event] = []
            return count

        count = sum(len(receivers) for receivers in self._receivers.values())
        self._receivers.clear()
        return count

    def send(self, event: EventLike, *args) -> None:
        """
        发送信号

        同步调用所有处理器。处理过程中新注册/注销的处理器不影响本次发送。
        """
        event = _coerce_event(event)
        self._stats["signals_sent"] += 1

        for receiver in list(self._receivers.get(event, [])):
            self._stats["handlers_invoked"] += 1
            try:
                result = receiver.invoke(*args)
            except Exception:
                self._stats["errors"] += 1
                logger.exception(f"信号 {event.value} 处理异常 [{receiver.name}]")
                continue
            if inspect.isawaitable(result):
                self._schedule(event, receiver, result)

    def _schedule(self, event: SchedulerEvent, receiver: SignalReceiver, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 没有运行中的事件循环
            self._stats["errors"] += 1
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.error(f"信号 {event.value} 的异步处理器无法执行: 没有运行中的事件循环 [{receiver.name}]")
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(partial(self._on_async_done, event, receiver))

    def _on_async_done(self, event: SchedulerEvent, receiver: SignalReceiver, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._stats["errors"] += 1
            logger.opt(exception=exc).error(f"信号 {event.value} 异步处理异常 [{receiver.name}]")

    def get_receivers(self, event: EventLike) -> List[Callable]:
        """获取事件的所有处理器"""
        return [r.callback for r in self._receivers.get(_coerce_event(event), [])]

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "pending_async_handlers": len(self._pending),
            "total_receivers": sum(len(r) for r in self._receivers.values()),
        }
