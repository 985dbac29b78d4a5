"""
codeagent-runtime（Python）：编码 agent 的安全与协调层。

说明：
- 当前包含：
  - 事件契约（closed discriminated union）+ 同步 EventBus
  - 工具门禁（plan 模式模拟写操作）+ shell 命令安全策略
  - 异步人工确认（HITL：超时/默认选择/记住命令）
  - 上下文压缩（token 预算 + 模型辅助决策）
  - 中断协调（协作式取消信号）
  - 配置加载器（YAML overlay + pydantic 校验）
"""

from __future__ import annotations

from codeagent_runtime.config.loader import RuntimeConfig, load_config
from codeagent_runtime.context.compressor import ContextCompressor
from codeagent_runtime.core.interrupt import CancellationSignal, InterruptCoordinator
from codeagent_runtime.core.tool_session import ToolSession
from codeagent_runtime.events.bus import EventBus
from codeagent_runtime.safety.hitl import HITLManager
from codeagent_runtime.safety.interceptor import ToolInterceptor

__all__ = [
    "CancellationSignal",
    "ContextCompressor",
    "EventBus",
    "HITLManager",
    "InterruptCoordinator",
    "RuntimeConfig",
    "ToolInterceptor",
    "ToolSession",
    "__version__",
    "load_config",
]

__version__ = "0.1.0"
