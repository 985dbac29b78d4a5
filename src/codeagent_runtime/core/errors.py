"""
运行时内部错误分类（异常类型）。

说明：
- 本层的失败一律降级为“结果中的 error 字段”或“安全默认值”，不会中断会话；
- 异常主要用于模块间传递错误层级语义（以及测试断言），对外结果建议使用 `InterceptResult.error`。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


class AgentRuntimeError(Exception):
    """运行时错误基类（不建议直接抛出）。"""


@dataclass(frozen=True)
class FrameworkIssue:
    """结构化问题对象（可用于日志/事件 context）。"""

    code: str
    message: str
    details: Dict[str, Any]


class FrameworkError(AgentRuntimeError):
    """框架层结构化错误（英文 `code/message/details`）。"""

    def __init__(self, *, code: str, message: str, details: Dict[str, Any] | None = None) -> None:
        """创建框架错误。

        参数：
        - `code`：稳定错误码（英文大写下划线）
        - `message`：英文错误消息
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> FrameworkIssue:
        """把异常转换为可序列化问题对象。"""

        return FrameworkIssue(code=self.code, message=self.message, details=dict(self.details))


class ConfigError(FrameworkError):
    """配置缺失/非法导致的错误。"""

    def __init__(self, message: str, *, code: str = "CONFIG_ERROR", details: Dict[str, Any] | None = None) -> None:
        """创建 `ConfigError`（默认错误码 `CONFIG_ERROR`）。"""

        super().__init__(code=code, message=message, details=details or {})


class AllowlistPersistenceError(FrameworkError):
    """allowlist 持久化失败（审批本身已生效，仅记录日志）。"""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(code="ALLOWLIST_PERSIST_FAILED", message=message, details=details or {})


class SummarizerError(AgentRuntimeError):
    """上下文摘要协作方失败（模型通信/输出解析）。"""
