"""任务注册表与优先级队列"""
import heapq
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Dict, Iterator, List, Optional

from ..common.exceptions import TaskNotFoundError
from .models import Task


@dataclass(order=True)
class QueueEntry:
    # 优先级取反，heapq 是小顶堆
    sort_key: int
    # 同优先级按入队顺序（FIFO）
    sequence: int
    task: Task = field(compare=False)
    enqueue_time: float = field(compare=False, default_factory=time.time)

    def to_dict(self):
        return {**self.task.to_dict(), "sequence": self.sequence, "enqueue_time": self.enqueue_time}


class TaskQueue:
    """
    等待队列

    按优先级降序出队，同优先级保持入队顺序。重试的任务重新入队时
    拿到新的序号，排在已有同优先级任务之后。
    """

    def __init__(self):
        self._queue: List[QueueEntry] = []
        self._entries: Dict[str, QueueEntry] = {}
        self._sequence = count()
        self._stats = {"enqueue_count": 0, "dequeue_count": 0, "removed_count": 0, "total_wait_time_ms": 0.0}

    def push(self, task: Task) -> bool:
        if task.task_id in self._entries:
            return False
        entry = QueueEntry(sort_key=-task.priority, sequence=next(self._sequence), task=task)
        heapq.heappush(self._queue, entry)
        self._entries[task.task_id] = entry
        self._stats["enqueue_count"] += 1
        return True

    def pop(self) -> Optional[Task]:
        if not self._queue:
            return None
        entry = heapq.heappop(self._queue)
        self._entries.pop(entry.task.task_id, None)
        self._stats["dequeue_count"] += 1
        self._stats["total_wait_time_ms"] += (time.time() - entry.enqueue_time) * 1000
        return entry.task

    def peek(self) -> Optional[Task]:
        return self._queue[0].task if self._queue else None

    def remove(self, task_id: str) -> Optional[Task]:
        entry = self._entries.pop(task_id, None)
        if entry is None:
            return None
        self._queue = [e for e in self._queue if e.task.task_id != task_id]
        heapq.heapify(self._queue)
        self._stats["removed_count"] += 1
        return entry.task

    def clear(self) -> List[Task]:
        """清空队列，按出队顺序返回被移除的任务"""
        evicted = [e.task for e in sorted(self._queue)]
        self._queue = []
        self._entries.clear()
        self._stats["removed_count"] += len(evicted)
        return evicted

    def contains(self, task_id: str) -> bool:
        return task_id in self._entries

    __contains__ = contains

    @property
    def size(self) -> int:
        return len(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def get_details(self):
        return [e.to_dict() for e in sorted(self._queue)]

    def get_stats(self):
        dequeued = self._stats["dequeue_count"]
        avg_wait = self._stats["total_wait_time_ms"] / dequeued if dequeued > 0 else 0.0
        return {**self._stats, "queue_size": len(self._queue), "avg_wait_time_ms": avg_wait}


class TaskRegistry:
    """活跃任务表（等待中 + 运行中），终态任务会被移除"""

    def __init__(self):
        self._tasks: Dict[str, Task] = {}

    def register(self, task: Task) -> None:
        if task.task_id in self._tasks:
            raise ValueError(f"任务 {task.task_id} 已存在")
        self._tasks[task.task_id] = task

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def discard(self, task_id: str) -> Optional[Task]:
        return self._tasks.pop(task_id, None)

    def clear(self) -> int:
        count_ = len(self._tasks)
        self._tasks.clear()
        return count_

    def values(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
