"""
InterruptCoordinator：进程级“中断当前任务”的开关。

说明：
- 每个任务只有一个有效的 CancellationSignal；`start_task()` 会换新，旧信号保持原状（已取消或惰性），
  永远不会被“复活”；
- 取消是协作式的：模型调用/工具执行在自然的挂起点检查信号，不会被强制抢占；
- 中断不会自动解析仍在等待的人工确认（只有回应或超时能释放）。
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


class CancellationSignal:
    """
    协作式取消信号。

    用法：
    - `signal.cancelled` / `signal()`：同步读取（可直接作为 cancel_checker 传入执行器）；
    - `await signal.wait()`：挂起直到被取消。
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._waiters: List[asyncio.Future[None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __call__(self) -> bool:
        """cancel_checker 形态：返回是否已取消。"""

        return self._cancelled

    def cancel(self) -> None:
        """触发取消（幂等）。"""

        if self._cancelled:
            return
        self._cancelled = True
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if fut.done():
                continue
            try:
                fut.get_loop().call_soon_threadsafe(_set_done, fut)
            except RuntimeError:
                # loop 已关闭：等待方已不存在
                continue

    async def wait(self) -> None:
        """挂起直到信号被取消（已取消时立即返回）。"""

        if self._cancelled:
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)


def _set_done(fut: "asyncio.Future[None]") -> None:
    if not fut.done():
        fut.set_result(None)


class InterruptCoordinator:
    """中断协调器（每个会话/进程一个）。"""

    def __init__(self) -> None:
        self._interrupted = False
        self._signal: Optional[CancellationSignal] = None

    def start_task(self) -> CancellationSignal:
        """开始新任务：创建新的取消信号并清除中断标记。"""

        self._interrupted = False
        self._signal = CancellationSignal()
        return self._signal

    def interrupt(self) -> None:
        """中断当前任务（幂等）。"""

        if not self._interrupted:
            logger.info("Task interrupted")
        self._interrupted = True
        if self._signal is not None:
            self._signal.cancel()

    def is_interrupted(self) -> bool:
        return self._interrupted

    def is_cancelled(self) -> bool:
        """当前信号是否已取消（无任务时为 False）。"""

        return self._signal.cancelled if self._signal is not None else False

    def get_cancellation_signal(self) -> Optional[CancellationSignal]:
        """当前任务的取消信号（未开始任务时为 None）。"""

        return self._signal

    def reset(self) -> None:
        """任务之间清理状态（旧信号不受影响）。"""

        self._interrupted = False
        self._signal = None


__all__ = ["CancellationSignal", "InterruptCoordinator"]
