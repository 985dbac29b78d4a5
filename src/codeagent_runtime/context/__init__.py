"""上下文治理（token 计数 + 摘要协作方 + 压缩器）。"""

from __future__ import annotations

from codeagent_runtime.context.compressor import ContextCompressor, ContextSummarizer
from codeagent_runtime.context.summarizer import CompressionDecision, CompressionResult, LlmContextSummarizer
from codeagent_runtime.context.tokens import TiktokenTokenizer, Tokenizer

__all__ = [
    "CompressionDecision",
    "CompressionResult",
    "ContextCompressor",
    "ContextSummarizer",
    "LlmContextSummarizer",
    "TiktokenTokenizer",
    "Tokenizer",
]
