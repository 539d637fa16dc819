"""
信号系统测试

测试处理器注册顺序、错误隔离和异步处理器。
"""

import asyncio

import pytest

from async_scheduler import ConfigurationError, SchedulerEvent
from async_scheduler.core.signals import SignalManager


class TestSignalManager:
    """信号管理器测试"""

    def test_handlers_called_in_registration_order(self):
        signals = SignalManager()
        calls = []
        signals.connect(SchedulerEvent.START, lambda task_id: calls.append(("a", task_id)))
        signals.connect(SchedulerEvent.START, lambda task_id: calls.append(("b", task_id)))

        signals.send(SchedulerEvent.START, "t1")

        assert calls == [("a", "t1"), ("b", "t1")]

    def test_string_event_names(self):
        """测试字符串事件名与枚举等价"""
        signals = SignalManager()
        calls = []
        signals.connect("success", lambda task_id, result: calls.append(result))

        signals.send(SchedulerEvent.SUCCESS, "t1", 42)

        assert calls == [42]

    def test_unknown_event(self):
        signals = SignalManager()

        with pytest.raises(ConfigurationError):
            signals.connect("done", lambda: None)
        with pytest.raises(ConfigurationError):
            signals.send("done")

    def test_non_callable_handler(self):
        signals = SignalManager()

        with pytest.raises(ConfigurationError) as exc_info:
            signals.connect(SchedulerEvent.FINISH, "not callable")
        assert exc_info.value.field == "handler"

    def test_disconnect(self):
        """测试断开只移除一个处理器"""
        signals = SignalManager()
        calls = []

        def handler():
            calls.append(1)

        signals.connect(SchedulerEvent.FINISH, handler)
        signals.connect(SchedulerEvent.FINISH, handler)

        assert signals.disconnect(SchedulerEvent.FINISH, handler) is True
        signals.send(SchedulerEvent.FINISH)
        assert calls == [1]

        assert signals.disconnect(SchedulerEvent.FINISH, handler) is True
        assert signals.disconnect(SchedulerEvent.FINISH, handler) is False

    def test_disconnect_all(self):
        signals = SignalManager()
        signals.connect(SchedulerEvent.PAUSE, lambda: None)
        signals.connect(SchedulerEvent.RESUME, lambda: None)
        signals.connect(SchedulerEvent.RESUME, lambda: None)

        assert signals.disconnect_all(SchedulerEvent.RESUME) == 2
        assert signals.get_receivers(SchedulerEvent.RESUME) == []
        assert signals.disconnect_all() == 1

    def test_handler_error_is_isolated(self):
        """测试处理器异常不影响后续处理器"""
        signals = SignalManager()
        calls = []

        def broken(task_id, error):
            raise RuntimeError("handler failed")

        signals.connect(SchedulerEvent.ERROR, broken)
        signals.connect(SchedulerEvent.ERROR, lambda task_id, error: calls.append(task_id))

        signals.send(SchedulerEvent.ERROR, "t1", ValueError("x"))

        assert calls == ["t1"]
        stats = signals.get_stats()
        assert stats["errors"] == 1
        assert stats["handlers_invoked"] == 2
        assert stats["signals_sent"] == 1

    def test_handler_added_during_send_not_called(self):
        signals = SignalManager()
        calls = []

        def late():
            calls.append("late")

        def register_late():
            calls.append("first")
            signals.connect(SchedulerEvent.FINISH, late)

        signals.connect(SchedulerEvent.FINISH, register_late)
        signals.send(SchedulerEvent.FINISH)

        assert calls == ["first"]

    @pytest.mark.asyncio
    async def test_async_handler(self):
        """测试异步处理器在事件循环中执行"""
        signals = SignalManager()
        calls = []

        async def handler(task_id):
            await asyncio.sleep(0)
            calls.append(task_id)

        signals.connect(SchedulerEvent.START, handler)
        signals.send(SchedulerEvent.START, "t1")
        assert calls == []

        await asyncio.sleep(0.01)
        assert calls == ["t1"]
        assert signals.get_stats()["pending_async_handlers"] == 0

    @pytest.mark.asyncio
    async def test_async_handler_error_counted(self):
        signals = SignalManager()

        async def handler():
            raise RuntimeError("async failure")

        signals.connect(SchedulerEvent.FINISH, handler)
        signals.send(SchedulerEvent.FINISH)
        await asyncio.sleep(0.01)

        assert signals.get_stats()["errors"] == 1

    def test_async_handler_without_loop(self):
        """测试没有事件循环时异步处理器被丢弃并记录错误"""
        signals = SignalManager()
        calls = []

        async def handler():
            calls.append(1)

        signals.connect(SchedulerEvent.FINISH, handler)
        signals.send(SchedulerEvent.FINISH)

        assert calls == []
        assert signals.get_stats()["errors"] == 1
