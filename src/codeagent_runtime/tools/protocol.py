"""
Tool 协议（ToolAction / InterceptResult / ToolExecutor）。

本模块只定义安全协调层与外部工具执行方之间的边界：
- ToolNames：协调层需要识别的工具名
- ToolAction：外层 agent loop 提议的一次工具调用
- InterceptResult：拦截/执行的统一输出（result/error/duration_ms）
- ToolExecutor / WriteClassifier：外部协作方协议
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class ToolNames:
    """协调层关心的工具名（与工具注册表保持一致）。"""

    SHELL_EXECUTOR = "shell_executor"
    MULTI_COMMAND = "multi_command"
    CREATE_FILE = "create_file"
    WRITE_FILE = "write_file"
    APPLY_PATCH = "apply_patch"


class ToolAction(BaseModel):
    """
    一次被提议的工具调用。

    字段：
    - tool：工具名
    - args：参数 dict
    """

    model_config = ConfigDict(extra="forbid")

    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)


class InterceptResult(BaseModel):
    """
    拦截器输出。

    字段：
    - result：执行结果或 plan 模式下的模拟结果
    - error：错误信息（执行异常/被拒绝/被中断）
    - duration_ms：从进入到返回的耗时（所有路径都会填写）
    """

    model_config = ConfigDict(extra="forbid")

    result: Any = None
    error: Optional[str] = None
    duration_ms: int = Field(default=0, ge=0)

    @property
    def ok(self) -> bool:
        """没有 error 即视为成功。"""

        return self.error is None


@runtime_checkable
class ToolExecutor(Protocol):
    """外部工具执行方（可抛异常；可为同步或异步实现）。"""

    def execute(self, tool_name: str, args: Dict[str, Any]) -> Any:
        """执行工具并返回结果（或 awaitable）。"""

        ...


@runtime_checkable
class WriteClassifier(Protocol):
    """shell 命令写操作分类器。"""

    def is_write_operation(self, command_line: str) -> bool:
        """命令是否会修改文件系统。"""

        ...


__all__ = ["InterceptResult", "ToolAction", "ToolExecutor", "ToolNames", "WriteClassifier"]
