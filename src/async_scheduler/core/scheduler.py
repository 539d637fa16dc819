"""
异步任务调度器

对外入口：添加任务、启动/暂停/恢复、取消与整体中止、事件订阅。

使用示例:
    scheduler = AsyncScheduler(concurrency=2, retry=1, timeout=1000)
    scheduler.on("error", lambda task_id, error: print(task_id, error))

    scheduler.add(fetch_page, priority=5)
    scheduler.add(fetch_page_with_token, cancellation_token=source.token)

    results = await scheduler.start()
"""
import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ..common.exceptions import ConfigurationError
from ..common.ids import generate_task_id
from .cancellation import CancellationSource, link_tokens
from .dispatcher import Dispatcher
from .models import AddTaskOptions, SchedulerConfig, Task, TaskStatus, accepts_token
from .queue import TaskQueue, TaskRegistry
from .signals import EventLike, SchedulerEvent, SignalManager


class SchedulerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class AsyncScheduler:
    def __init__(self, config: Optional[SchedulerConfig] = None, *, signals: Optional[SignalManager] = None, **overrides):
        """
        Args:
            config: 调度器配置，缺省时从 settings 读取默认值
            signals: 自定义信号管理器
            **overrides: concurrency / retry / timeout(毫秒) / auto_start
        """
        self.config = SchedulerConfig.build(config, **overrides)
        self.signals = signals or SignalManager()
        self.queue = TaskQueue()
        self.registry = TaskRegistry()
        # 全局取消源，abort_all 触发后原地重置
        self._global_source = CancellationSource()
        self.dispatcher = Dispatcher(self.config, self.queue, self.registry, self.signals)
        self.dispatcher.set_callbacks(on_finish=self._handle_finish)
        self._completion: Optional[asyncio.Future] = None
        self._completed = False
        self._last_results: List[Any] = []

    # ------------------------------------------------------------------
    # 状态
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        if self.dispatcher.is_paused:
            return SchedulerState.PAUSED
        if self.dispatcher.is_active:
            return SchedulerState.RUNNING
        if self._completed:
            return SchedulerState.COMPLETED
        return SchedulerState.IDLE

    @property
    def is_started(self) -> bool:
        return self.dispatcher.is_active

    @property
    def is_completed(self) -> bool:
        return self._completed

    @property
    def is_paused(self) -> bool:
        return self.dispatcher.is_paused

    @property
    def pending_count(self) -> int:
        return self.queue.size

    @property
    def running_count(self) -> int:
        return self.dispatcher.running_count

    @property
    def results(self) -> List[Any]:
        """当前一轮已成功的结果；已完成时为上一轮的结果"""
        if self._completed:
            return list(self._last_results)
        return self.dispatcher.results

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.registry.get(task_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "pending": self.queue.size,
            "running": self.dispatcher.running_count,
            "dispatcher": self.dispatcher.get_stats(),
            "queue": self.queue.get_stats(),
            "signals": self.signals.get_stats(),
        }

    # ------------------------------------------------------------------
    # 任务
    # ------------------------------------------------------------------

    def add(self, work: Callable[..., Any], options=None, **kwargs) -> str:
        """
        添加任务

        Args:
            work: 任务函数，可同步可异步；能接收一个位置参数时会传入取消令牌
            options: AddTaskOptions 或 dict
            **kwargs: priority / retry / timeout(毫秒) / cancellation_token

        Returns:
            任务 ID

        Raises:
            ConfigurationError: 参数非法
        """
        if not callable(work):
            raise ConfigurationError("work 必须是可调用对象", field="work")
        opts = AddTaskOptions.build(options, **kwargs)

        task = Task(
            task_id=generate_task_id(),
            work=work,
            priority=opts.priority,
            retry=opts.retry,
            timeout=opts.timeout,
            pass_token=accepts_token(work),
        )
        task.link = link_tokens(task.source.token, self._global_source.token, opts.cancellation_token)
        self.registry.register(task)
        self.queue.push(task)
        logger.debug(f"任务已添加 [{task.task_id}] priority={task.priority}")

        if self.config.auto_start:
            if not self.dispatcher.is_active:
                self._begin_run()
            self.dispatcher.admit()
        return task.task_id

    def remove(self, task_id: str) -> bool:
        """移除等待中的任务（不发事件）；运行中的任务不受影响"""
        task = self.registry.get(task_id)
        if task is None or task.status != TaskStatus.PENDING:
            return False
        return self._evict(task)

    def cancel_task(self, task_id: str) -> bool:
        """
        取消任务

        等待中的任务直接移除（从未开始，不发事件）；运行中的任务触发其
        自身的取消源，由执行竞争感知后以 TaskCancelledError 结束。
        """
        task = self.registry.get(task_id)
        if task is None:
            return False
        if task.status == TaskStatus.PENDING:
            return self._evict(task)
        if task.status == TaskStatus.RUNNING:
            logger.info(f"取消运行中的任务 [{task_id}]")
            return task.source.cancel("cancel_task")
        return False

    def clear(self) -> int:
        """清空等待队列，运行中的任务不受影响"""
        evicted = self.queue.clear()
        for task in evicted:
            self._discard(task)
        if evicted:
            logger.info(f"已清空等待队列: {len(evicted)} 个任务")
        return len(evicted)

    def _evict(self, task: Task) -> bool:
        if self.queue.remove(task.task_id) is None:
            return False
        self._discard(task)
        return True

    def _discard(self, task: Task) -> None:
        task.status = TaskStatus.CANCELLED
        task.release_token()
        self.registry.discard(task.task_id)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Future:
        """
        启动调度，返回完成 future（结果为按完成顺序排列的成功结果列表）

        幂等：运行中重复调用返回同一个 future；已完成且没有新任务时返回
        已完成的 future。必须在运行中的事件循环里调用。
        """
        loop = asyncio.get_running_loop()

        if self._completed and not self.queue.size:
            if self._completion is None or not self._completion.done():
                self._completion = loop.create_future()
                self._completion.set_result(list(self._last_results))
            return self._completion

        if self.dispatcher.is_active:
            if self._completion is None or self._completion.done():
                self._completion = loop.create_future()
            return self._completion

        self._completion = loop.create_future()
        self._begin_run()
        self.dispatcher.admit()
        return self._completion

    async def join(self) -> List[Any]:
        """启动（如未启动）并等待本轮完成"""
        return await self.start()

    def _begin_run(self) -> None:
        self._completed = False
        self._last_results = []
        self.dispatcher.begin_run()
        logger.info(
            f"调度开始: concurrency={self.config.concurrency} pending={self.queue.size} "
            f"retry={self.config.retry} timeout={self.config.timeout}ms"
        )

    def _handle_finish(self, results: List[Any]) -> None:
        self._completed = True
        self._last_results = list(results)
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(list(results))

    def pause(self) -> None:
        """暂停准入，运行中的任务不受影响"""
        if self.dispatcher.is_paused:
            return
        self.dispatcher.pause()
        logger.info("调度已暂停")
        self.signals.send(SchedulerEvent.PAUSE)

    def resume(self) -> None:
        """恢复准入，逐个槽位准入直到容量或队列耗尽"""
        if not self.dispatcher.is_paused:
            return
        self.dispatcher.unpause()
        logger.info("调度已恢复")
        self.signals.send(SchedulerEvent.RESUME)
        while self.dispatcher.admit_one():
            pass

    def abort_all(self) -> None:
        """
        中止全部任务并重置

        丢弃等待队列（不发事件），触发全局取消源使运行中的任务以取消结束，
        清空注册表与计数。未完成的 future 以已有的成功结果完成，不发 finish。
        之后实例等同于新建的调度器（已注册的事件处理器保留）。
        """
        self.dispatcher.pause()
        discarded = self.queue.clear()
        for task in discarded:
            task.status = TaskStatus.CANCELLED
            task.release_token()
        running = self.dispatcher.running_count
        self._global_source.cancel("abort_all")
        self.registry.clear()
        results = self.dispatcher.results
        self.dispatcher.reset()
        self._global_source.reset()

        if self._completion is not None and not self._completion.done():
            self._completion.set_result(results)
        self._completion = None
        self._completed = False
        self._last_results = []
        logger.warning(f"已中止全部任务: 丢弃等待 {len(discarded)} 个，取消运行中 {running} 个")

    # ------------------------------------------------------------------
    # 事件
    # ------------------------------------------------------------------

    def on(self, event: EventLike, handler: Callable) -> None:
        self.signals.connect(event, handler)

    def off(self, event: EventLike, handler: Callable) -> bool:
        return self.signals.disconnect(event, handler)
