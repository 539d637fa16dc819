"""
调度器 - 准入与执行

事件驱动，不轮询。以下时机尝试准入：
- 自动启动模式下添加任务
- 运行中的任务结束（释放槽位）
- resume()
- 首次 start()

所有队列/注册表/计数的修改都发生在事件循环线程上的同步决策点，
只有等待任务本身、取消令牌和超时计时器时才会让出控制权。
"""
import asyncio
import inspect
import time
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from ..common.exceptions import TaskCancelledError, TaskExecutionError, TaskTimeoutError
from .models import SchedulerConfig, Task, TaskStatus
from .queue import TaskQueue, TaskRegistry
from .signals import SchedulerEvent, SignalManager


def _consume_outcome(future: asyncio.Future) -> None:
    """取走被放弃的 work 的结果，避免 "exception was never retrieved" """
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug(f"已放弃的任务随后抛出异常: {exc!r}")


class Dispatcher:
    def __init__(self, config: SchedulerConfig, queue: TaskQueue, registry: TaskRegistry, signals: SignalManager):
        self.config = config
        self.queue = queue
        self.registry = registry
        self.signals = signals
        self._running: Dict[str, asyncio.Task] = {}
        # reset() 之后仍在收尾的旧任务，保持强引用直到结束
        self._detached: Set[asyncio.Task] = set()
        self._paused = False
        self._active = False
        self._finished = False
        self._epoch = 0
        self._results: List[Any] = []
        self._on_finish: Optional[Callable[[List[Any]], None]] = None
        self._stats = {"admitted": 0, "succeeded": 0, "failed": 0, "retried": 0, "cancelled": 0}

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def running_ids(self) -> List[str]:
        return list(self._running)

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_finished(self) -> bool:
        return self._finished

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def results(self) -> List[Any]:
        return list(self._results)

    def set_callbacks(self, on_finish: Optional[Callable[[List[Any]], None]] = None) -> None:
        self._on_finish = on_finish

    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False

    def begin_run(self) -> None:
        """开始新一轮调度"""
        self._active = True
        self._finished = False
        self._results = []

    def reset(self) -> None:
        """回到初始状态；仍在运行的旧任务结束后只会上报 error 事件"""
        self._epoch += 1
        for runner in self._running.values():
            if not runner.done():
                self._detached.add(runner)
                runner.add_done_callback(self._detached.discard)
        self._running.clear()
        self._paused = False
        self._active = False
        self._finished = False
        self._results = []

    # ------------------------------------------------------------------
    # 准入
    # ------------------------------------------------------------------

    def admit(self) -> int:
        """尽可能填满并发槽位，返回本次准入的任务数"""
        admitted = 0
        while self.admit_one():
            admitted += 1
        return admitted

    def admit_one(self) -> bool:
        """单次准入决策"""
        if self._paused or not self._active:
            return False
        if len(self._running) >= self.config.concurrency:
            return False

        task = self.queue.pop()
        if task is None:
            if not self._running:
                self._emit_finish()
            return False

        task.status = TaskStatus.RUNNING
        task.started_at = time.time()
        task.epoch = self._epoch
        self._stats["admitted"] += 1
        runner = asyncio.get_running_loop().create_task(self._run(task))
        self._running[task.task_id] = runner
        logger.debug(f"任务准入 [{task.task_id}] priority={task.priority} attempt={task.attempt} running={len(self._running)}")
        self.signals.send(SchedulerEvent.START, task.task_id)
        return True

    def _emit_finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._active = False
        results = list(self._results)
        logger.info(f"调度完成: 成功 {len(results)} 个任务")
        if self._on_finish:
            self._on_finish(results)
        self.signals.send(SchedulerEvent.FINISH)

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    async def _invoke_work(self, task: Task) -> Any:
        result = task.work(task.token) if task.pass_token else task.work()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def execute(self, task: Task) -> Any:
        """
        竞争执行: 任务本身 / 取消令牌 / 超时计时器

        先结束的一方决定结果，其余两方的回调和计时器随即释放。
        """
        token = task.token
        if token.cancelled:
            raise TaskCancelledError(task.task_id, token.reason)

        loop = asyncio.get_running_loop()
        work = loop.create_task(self._invoke_work(task))
        cancel_waiter = loop.create_future()

        def _on_cancel():
            if not cancel_waiter.done():
                cancel_waiter.set_result(None)

        handle = token.add_callback(_on_cancel)
        timeout_ms = task.effective_timeout(self.config.timeout)
        timeout = timeout_ms / 1000 if timeout_ms > 0 else None

        try:
            done, _ = await asyncio.wait({work, cancel_waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            self._abandon(work)
            raise
        finally:
            token.remove_callback(handle)
            if not cancel_waiter.done():
                cancel_waiter.cancel()

        if work in done:
            if work.cancelled():
                raise TaskExecutionError("任务自身抛出了 CancelledError", task.task_id)
            return work.result()

        self._abandon(work)
        if cancel_waiter in done:
            raise TaskCancelledError(task.task_id, token.reason)
        raise TaskTimeoutError(task.task_id, timeout_ms)

    @staticmethod
    def _abandon(work: asyncio.Task) -> None:
        # 协作式取消：只发出取消请求，不等待
        if work.done():
            _consume_outcome(work)
            return
        work.cancel()
        work.add_done_callback(_consume_outcome)

    async def _run(self, task: Task) -> None:
        try:
            result = await self.execute(task)
        except Exception as e:
            # 令牌已触发时失败一律按取消处理，不走重试
            if task.token.cancelled:
                if isinstance(e, TaskCancelledError):
                    self._on_cancelled(task, e)
                else:
                    self._on_cancelled(task, TaskCancelledError(task.task_id, task.token.reason))
            else:
                self._on_failure(task, e)
        else:
            self._on_success(task, result)

    # ------------------------------------------------------------------
    # 结果处理
    # ------------------------------------------------------------------

    def _is_stale(self, task: Task) -> bool:
        return task.epoch != self._epoch

    def _on_success(self, task: Task, result: Any) -> None:
        if self._is_stale(task):
            self._on_aborted(task)
            return
        task.result = result
        task.status = TaskStatus.SUCCEEDED
        task.finished_at = time.time()
        self._results.append(result)
        self._stats["succeeded"] += 1
        logger.debug(f"任务成功 [{task.task_id}] attempt={task.attempt}")
        self.signals.send(SchedulerEvent.SUCCESS, task.task_id, result)
        self._settle(task)

    def _on_cancelled(self, task: Task, error: TaskCancelledError) -> None:
        if self._is_stale(task):
            self._on_aborted(task, error)
            return
        task.error = error
        task.status = TaskStatus.CANCELLED
        task.finished_at = time.time()
        self._stats["cancelled"] += 1
        logger.info(f"任务已取消 [{task.task_id}] reason={error.reason}")
        self.signals.send(SchedulerEvent.ERROR, task.task_id, error)
        self._settle(task)

    def _on_failure(self, task: Task, error: Exception) -> None:
        if self._is_stale(task):
            self._on_aborted(task)
            return
        task.error = error
        max_retries = task.effective_retry(self.config.retry)
        if task.attempt < max_retries:
            task.attempt += 1
            task.status = TaskStatus.PENDING
            self._stats["retried"] += 1
            logger.warning(f"任务失败，准备重试 [{task.task_id}] ({task.attempt}/{max_retries}): {error!r}")
            # 先释放槽位并入队，retry 处理器里的 cancel_task / remove 才能找到它
            self._running.pop(task.task_id, None)
            self.queue.push(task)
            self.signals.send(SchedulerEvent.RETRY, task.task_id, task.attempt, error)
            if self._is_stale(task):
                # 处理器里调用了 abort_all
                self._on_aborted(task)
                return
            self.admit()
            return

        task.status = TaskStatus.FAILED
        task.finished_at = time.time()
        self._stats["failed"] += 1
        logger.error(f"任务失败 [{task.task_id}] attempts={task.attempt + 1}: {error!r}")
        self.signals.send(SchedulerEvent.ERROR, task.task_id, error)
        self._settle(task)

    def _on_aborted(self, task: Task, error: Optional[TaskCancelledError] = None) -> None:
        """abort_all 之前已在运行的任务：只上报取消，不触碰当前轮次的状态"""
        error = error or TaskCancelledError(task.task_id, task.token.reason)
        task.error = error
        task.status = TaskStatus.CANCELLED
        task.finished_at = time.time()
        task.release_token()
        self.signals.send(SchedulerEvent.ERROR, task.task_id, error)

    def _settle(self, task: Task) -> None:
        """终态收尾: 移出注册表，释放槽位，继续准入"""
        task.release_token()
        if self._is_stale(task):
            return
        self.registry.discard(task.task_id)
        self._running.pop(task.task_id, None)
        self.admit()

    def get_stats(self):
        return {
            **self._stats,
            "running": len(self._running),
            "paused": self._paused,
            "active": self._active,
            "epoch": self._epoch,
        }
