"""
取消令牌 - 协作式取消

类似 AbortController / AbortSignal 的取消模型：
- CancellationSource: 持有并触发令牌
- CancellationToken: 只读视图，交给任务观察
- LinkedCancellationSource: 组合多个令牌，任意一个触发即触发

令牌一旦触发在其生命周期内保持触发状态，只有所属的 source 可以原地重置。
"""
import asyncio
from functools import partial
from itertools import count
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..common.exceptions import TaskCancelledError


class CancellationToken:
    """取消令牌"""

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._handles = count(1)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def add_callback(self, callback: Callable[[], None]) -> int:
        """
        注册取消回调

        令牌已触发时回调立即同步执行并返回 0。

        Returns:
            用于 remove_callback 的句柄
        """
        if self._cancelled:
            self._invoke(callback)
            return 0
        handle = next(self._handles)
        self._callbacks[handle] = callback
        return handle

    def remove_callback(self, handle: int) -> bool:
        """注销取消回调"""
        return self._callbacks.pop(handle, None) is not None

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TaskCancelledError(reason=self._reason)

    async def wait(self) -> None:
        """等待令牌触发"""
        if self._cancelled:
            return
        waiter = asyncio.get_running_loop().create_future()

        def _wake():
            if not waiter.done():
                waiter.set_result(None)

        handle = self.add_callback(_wake)
        try:
            await waiter
        finally:
            self.remove_callback(handle)

    def _fire(self, reason: Optional[str]) -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        callbacks = list(self._callbacks.values())
        self._callbacks.clear()
        for callback in callbacks:
            self._invoke(callback)
        return True

    def _rearm(self) -> None:
        self._cancelled = False
        self._reason = None
        self._callbacks.clear()

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        # 单个回调异常不影响其他回调
        try:
            callback()
        except Exception:
            logger.exception("取消回调执行异常")

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self._cancelled} reason={self._reason!r}>"


class CancellationSource:
    """取消源"""

    def __init__(self):
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def cancel(self, reason: Optional[str] = None) -> bool:
        """
        触发取消

        幂等；回调按注册顺序同步执行。

        Returns:
            本次调用是否真正触发了令牌
        """
        return self._token._fire(reason)

    def reset(self) -> None:
        """原地重置为未触发状态，令牌对象保持不变"""
        self._token._rearm()


class LinkedCancellationSource(CancellationSource):
    """
    组合取消源

    任意一个输入令牌触发时触发自身，并立即从其余输入令牌上注销，
    不留下悬挂的回调。
    """

    def __init__(self, *tokens: Optional[CancellationToken]):
        super().__init__()
        self._links: List[Tuple[CancellationToken, int]] = []
        for token in tokens:
            if token is None:
                continue
            if token.cancelled:
                self._on_source_fired(token)
                break
            handle = token.add_callback(partial(self._on_source_fired, token))
            self._links.append((token, handle))

    @property
    def linked_count(self) -> int:
        return len(self._links)

    def _on_source_fired(self, source: CancellationToken) -> None:
        self.close()
        self.cancel(source.reason)

    def close(self) -> None:
        """注销所有输入令牌上的回调，不触发取消"""
        links, self._links = self._links, []
        for token, handle in links:
            token.remove_callback(handle)


def link_tokens(*tokens: Optional[CancellationToken]) -> LinkedCancellationSource:
    """组合多个令牌（逻辑或），None 会被忽略"""
    return LinkedCancellationSource(*tokens)
