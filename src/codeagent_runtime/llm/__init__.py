"""
LLM backend 协议（非流式补全）。

说明：
- 真实 backend 由调用方提供；本包只附带离线测试用的 FakeCompletionBackend。
"""

from __future__ import annotations

from codeagent_runtime.llm.fake import FakeCompletionBackend
from codeagent_runtime.llm.protocol import CompletionBackend, CompletionRequest

__all__ = ["CompletionBackend", "CompletionRequest", "FakeCompletionBackend"]
