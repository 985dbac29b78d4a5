"""
执行模式管理（code / plan）。

说明：
- 模式是进程级状态，由本管理器持有并修改；ToolInterceptor 只读；
- 模式变化时在 EventBus 上发出 `system_info`。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from codeagent_runtime.core.contracts import SystemInfoEvent
from codeagent_runtime.events.bus import EventBus

logger = logging.getLogger(__name__)


class ExecutionMode(str, Enum):
    """执行模式：CODE=正常执行；PLAN=写操作只模拟不执行。"""

    CODE = "code"
    PLAN = "plan"


@dataclass(frozen=True)
class ExecutionModeInfo:
    """模式的展示信息。"""

    mode: ExecutionMode
    display_name: str
    description: str
    icon: str


_MODE_INFO = {
    ExecutionMode.PLAN: ExecutionModeInfo(
        mode=ExecutionMode.PLAN,
        display_name="Plan Mode",
        description="Research and analyze, no file modifications",
        icon="📋",
    ),
    ExecutionMode.CODE: ExecutionModeInfo(
        mode=ExecutionMode.CODE,
        display_name="Code Mode",
        description="Full development capabilities with file modifications",
        icon="⚡",
    ),
}


class ExecutionModeManager:
    """
    执行模式管理器。

    参数：
    - bus：可选；提供时在模式变化后发出 system_info
    - initial：初始模式（默认 CODE）
    """

    def __init__(self, bus: Optional[EventBus] = None, *, initial: ExecutionMode = ExecutionMode.CODE) -> None:
        self._bus = bus
        self._initial = ExecutionMode(initial)
        self._mode = self._initial

    def get_current_mode(self) -> ExecutionMode:
        """返回当前模式。"""

        return self._mode

    def set_mode(self, mode: ExecutionMode) -> None:
        """切换模式；发生变化时发出 system_info。"""

        new_mode = ExecutionMode(mode)
        old_mode = self._mode
        self._mode = new_mode
        if old_mode == new_mode:
            return
        message = (
            f"Execution mode changed: {self.get_mode_info(old_mode).display_name} → "
            f"{self.get_mode_info(new_mode).display_name}"
        )
        logger.info(message)
        if self._bus is not None:
            self._bus.emit(
                SystemInfoEvent(
                    level="info",
                    message=message,
                    context={"old_mode": old_mode.value, "new_mode": new_mode.value},
                )
            )

    def cycle_mode(self) -> ExecutionMode:
        """在 CODE / PLAN 之间切换，返回新模式。"""

        new_mode = ExecutionMode.PLAN if self._mode == ExecutionMode.CODE else ExecutionMode.CODE
        self.set_mode(new_mode)
        return new_mode

    def get_mode_info(self, mode: Optional[ExecutionMode] = None) -> ExecutionModeInfo:
        return _MODE_INFO[ExecutionMode(mode) if mode is not None else self._mode]

    def get_status_message(self) -> str:
        info = self.get_mode_info()
        return f"{info.icon} {info.display_name}"

    def reset(self) -> None:
        """恢复到初始模式（不发事件）。"""

        self._mode = self._initial


__all__ = ["ExecutionMode", "ExecutionModeInfo", "ExecutionModeManager"]
