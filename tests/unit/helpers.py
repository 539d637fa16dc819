"""单元测试辅助工具"""

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from async_scheduler import AsyncScheduler, SchedulerEvent


@dataclass
class EventRecorder:
    """按发生顺序记录调度器的全部事件"""

    events: list[tuple[Any, ...]] = field(default_factory=list)

    def attach(self, scheduler: AsyncScheduler) -> "EventRecorder":
        for event in SchedulerEvent:
            scheduler.on(event, partial(self._record, event.value))
        return self

    def _record(self, name: str, *args: Any) -> None:
        self.events.append((name, *args))

    def of(self, name: str) -> list[tuple[Any, ...]]:
        return [e[1:] for e in self.events if e[0] == name]

    def count(self, name: str) -> int:
        return len(self.of(name))

    @property
    def names(self) -> list[str]:
        return [e[0] for e in self.events]

    @property
    def started_ids(self) -> list[str]:
        return [args[0] for args in self.of("start")]


async def delay(seconds: float, value: Any = None) -> Any:
    await asyncio.sleep(seconds)
    return value
