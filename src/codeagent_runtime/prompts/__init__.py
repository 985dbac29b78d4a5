"""Prompt 模板（上下文压缩的决策/摘要提示词）。"""

from __future__ import annotations

from codeagent_runtime.prompts.compaction import (
    COMPRESSED_MESSAGE_PREFIX,
    build_compression_messages,
    build_decision_messages,
)

__all__ = ["COMPRESSED_MESSAGE_PREFIX", "build_compression_messages", "build_decision_messages"]
