"""
LLM 协议：CompletionRequest / CompletionBackend。

说明：
- 真正的模型调用（HTTP/SDK）不在本仓实现，由外部 backend 满足该协议；
- 本仓只在“上下文摘要协作方”中使用：非流式、禁用 tools、要求 JSON 输出。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class CompletionRequest:
    """
    CompletionRequest：一次非流式补全请求。

    字段：
    - model：模型名
    - messages：OpenAI-compatible message list（role/content）
    - response_format：可选（例如 `{"type": "json_object"}`）
    - temperature：可选
    - extra：provider 特有扩展字段（即使 backend 忽略也应可传递）
    """

    model: str
    messages: List[Dict[str, Any]]
    response_format: Optional[Dict[str, Any]] = None
    temperature: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class CompletionBackend(Protocol):
    """LLM backend 抽象：返回完整的文本输出。"""

    async def complete(self, request: CompletionRequest) -> str:
        """执行一次补全；失败时抛异常（由调用方降级处理）。"""

        ...


__all__ = ["CompletionBackend", "CompletionRequest"]
