"""
单元测试 fixtures
"""

import sys

import pytest
from loguru import logger

from async_scheduler import AsyncScheduler
from helpers import EventRecorder


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def make_scheduler(recorder):
    """创建挂好事件记录器的调度器，未指定的参数不受环境变量影响"""

    def _make(**options) -> AsyncScheduler:
        options.setdefault("concurrency", 5)
        options.setdefault("retry", 0)
        options.setdefault("timeout", 0)
        options.setdefault("auto_start", False)
        scheduler = AsyncScheduler(**options)
        recorder.attach(scheduler)
        return scheduler

    return _make


@pytest.fixture
def log_messages():
    """收集 WARNING 及以上的 loguru 日志"""
    messages = []
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)
