"""Tool 协议（安全协调层与外部工具执行方的边界）。"""

from __future__ import annotations

from codeagent_runtime.tools.protocol import InterceptResult, ToolAction, ToolExecutor, ToolNames, WriteClassifier

__all__ = ["InterceptResult", "ToolAction", "ToolExecutor", "ToolNames", "WriteClassifier"]
