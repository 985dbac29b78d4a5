"""
Tokenizer：确定性的 token 计数（上下文压缩的预算依据）。

说明：
- 压缩决策必须基于真实 tokenizer，而不是字符数估算；
- 默认实现使用 tiktoken 的 `cl100k_base` 编码，首次计数时才加载编码表。
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

import tiktoken


@runtime_checkable
class Tokenizer(Protocol):
    """token 计数协议（同一输入必须得到同一结果）。"""

    def count_tokens(self, text: str) -> int:
        """返回 text 的 token 数。"""

        ...


class TiktokenTokenizer:
    """
    基于 tiktoken 的 tokenizer。

    参数：
    - encoding_name：编码名（默认 cl100k_base）
    - model：可选；提供时优先按模型名选择编码，未知模型回退到 encoding_name
    """

    def __init__(self, encoding_name: str = "cl100k_base", *, model: Optional[str] = None) -> None:
        self._encoding_name = encoding_name
        self._model = model
        self._encoding: Any = None

    def _get_encoding(self) -> Any:
        if self._encoding is None:
            if self._model:
                try:
                    self._encoding = tiktoken.encoding_for_model(self._model)
                except KeyError:
                    self._encoding = tiktoken.get_encoding(self._encoding_name)
            else:
                self._encoding = tiktoken.get_encoding(self._encoding_name)
        return self._encoding

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        # disallowed_special=()：对话内容里出现 <|endoftext|> 之类文本时按普通文本计数
        return len(self._get_encoding().encode(str(text), disallowed_special=()))


__all__ = ["TiktokenTokenizer", "Tokenizer"]
