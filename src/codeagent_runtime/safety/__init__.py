"""
Safety（执行模式 + 命令策略 + 工具门禁 + 人工确认）模块。
"""

from __future__ import annotations

from codeagent_runtime.safety.allowlist import AllowlistStore, InMemoryAllowlistStore, YamlAllowlistStore
from codeagent_runtime.safety.hitl import HITLManager, PendingConfirmation
from codeagent_runtime.safety.interceptor import WRITE_TOOLS, ToolInterceptor
from codeagent_runtime.safety.modes import ExecutionMode, ExecutionModeInfo, ExecutionModeManager
from codeagent_runtime.safety.policy import (
    CommandClassification,
    CommandSecurityPolicy,
    CommandValidationResult,
    extract_command_name,
)

__all__ = [
    "AllowlistStore",
    "CommandClassification",
    "CommandSecurityPolicy",
    "CommandValidationResult",
    "ExecutionMode",
    "ExecutionModeInfo",
    "ExecutionModeManager",
    "HITLManager",
    "InMemoryAllowlistStore",
    "PendingConfirmation",
    "ToolInterceptor",
    "WRITE_TOOLS",
    "YamlAllowlistStore",
    "extract_command_name",
]
