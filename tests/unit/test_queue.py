"""
任务队列测试

测试优先级出队、同优先级 FIFO、移除和注册表。
"""

import pytest

from async_scheduler import TaskNotFoundError
from async_scheduler.core.models import Task
from async_scheduler.core.queue import QueueEntry, TaskQueue, TaskRegistry


def make_task(task_id: str, priority: int = 0) -> Task:
    return Task(task_id=task_id, work=lambda: None, priority=priority)


class TestQueueEntry:
    """队列项测试"""

    def test_higher_priority_sorts_first(self):
        high = QueueEntry(sort_key=-10, sequence=1, task=make_task("high", 10))
        low = QueueEntry(sort_key=-1, sequence=0, task=make_task("low", 1))

        assert high < low

    def test_same_priority_uses_sequence(self):
        first = QueueEntry(sort_key=-5, sequence=0, task=make_task("first", 5))
        second = QueueEntry(sort_key=-5, sequence=1, task=make_task("second", 5))

        assert first < second


class TestTaskQueue:
    """等待队列测试"""

    def test_pop_by_priority(self):
        """测试按优先级降序出队"""
        queue = TaskQueue()
        for task_id, priority in [("a", 1), ("b", 5), ("c", 3)]:
            queue.push(make_task(task_id, priority))

        assert [queue.pop().task_id for _ in range(3)] == ["b", "c", "a"]
        assert queue.pop() is None

    def test_fifo_within_priority(self):
        """测试同优先级保持入队顺序"""
        queue = TaskQueue()
        for task_id in ["a", "b", "c", "d"]:
            queue.push(make_task(task_id, 2))

        assert [queue.pop().task_id for _ in range(4)] == ["a", "b", "c", "d"]

    def test_negative_priority(self):
        queue = TaskQueue()
        queue.push(make_task("neg", -1))
        queue.push(make_task("zero", 0))

        assert queue.pop().task_id == "zero"

    def test_requeue_goes_behind_same_priority(self):
        """测试重新入队的任务排在同优先级之后、低优先级之前"""
        queue = TaskQueue()
        retried = make_task("retried", 5)
        queue.push(retried)
        queue.push(make_task("peer", 5))
        queue.push(make_task("low", 1))

        assert queue.pop() is retried
        queue.push(retried)

        assert [queue.pop().task_id for _ in range(3)] == ["peer", "retried", "low"]

    def test_push_duplicate_rejected(self):
        queue = TaskQueue()
        task = make_task("a")

        assert queue.push(task) is True
        assert queue.push(task) is False
        assert queue.size == 1

    def test_peek(self):
        queue = TaskQueue()
        assert queue.peek() is None

        queue.push(make_task("a", 1))
        queue.push(make_task("b", 2))

        assert queue.peek().task_id == "b"
        assert len(queue) == 2

    def test_remove(self):
        """测试按 ID 移除并保持顺序"""
        queue = TaskQueue()
        for task_id, priority in [("a", 1), ("b", 5), ("c", 3)]:
            queue.push(make_task(task_id, priority))

        removed = queue.remove("c")

        assert removed.task_id == "c"
        assert "c" not in queue
        assert queue.remove("c") is None
        assert [queue.pop().task_id for _ in range(2)] == ["b", "a"]

    def test_clear_returns_tasks_in_order(self):
        queue = TaskQueue()
        for task_id, priority in [("a", 1), ("b", 5), ("c", 3)]:
            queue.push(make_task(task_id, priority))

        evicted = queue.clear()

        assert [t.task_id for t in evicted] == ["b", "c", "a"]
        assert queue.size == 0
        assert not queue.contains("a")

    def test_get_details(self):
        queue = TaskQueue()
        queue.push(make_task("a", 1))
        queue.push(make_task("b", 2))

        details = queue.get_details()

        assert [d["task_id"] for d in details] == ["b", "a"]
        assert details[0]["status"] == "pending"
        assert "sequence" in details[0]

    def test_stats(self):
        """测试统计信息"""
        queue = TaskQueue()
        for task_id in ["a", "b", "c"]:
            queue.push(make_task(task_id))
        queue.pop()
        queue.remove("b")

        stats = queue.get_stats()

        assert stats["enqueue_count"] == 3
        assert stats["dequeue_count"] == 1
        assert stats["removed_count"] == 1
        assert stats["queue_size"] == 1
        assert stats["avg_wait_time_ms"] >= 0


class TestTaskRegistry:
    """任务注册表测试"""

    def test_register_and_get(self):
        registry = TaskRegistry()
        task = make_task("a")

        registry.register(task)

        assert registry.get("a") is task
        assert "a" in registry
        assert len(registry) == 1

    def test_register_duplicate(self):
        registry = TaskRegistry()
        registry.register(make_task("a"))

        with pytest.raises(ValueError):
            registry.register(make_task("a"))

    def test_require_missing(self):
        registry = TaskRegistry()

        with pytest.raises(TaskNotFoundError) as exc_info:
            registry.require("missing")
        assert exc_info.value.task_id == "missing"
        assert exc_info.value.error_code == "TASK_NOT_FOUND"

    def test_discard_and_clear(self):
        registry = TaskRegistry()
        for task_id in ["a", "b", "c"]:
            registry.register(make_task(task_id))

        assert registry.discard("a").task_id == "a"
        assert registry.discard("a") is None
        assert sorted(t.task_id for t in registry.values()) == ["b", "c"]
        assert registry.clear() == 2
        assert len(registry) == 0
