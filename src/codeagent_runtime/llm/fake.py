"""
FakeCompletionBackend：离线可测的脚本化 backend。

用法：
- 按顺序返回预置的响应；响应为异常实例时抛出该异常；
- `calls` 记录每次收到的 CompletionRequest（用于断言 prompt/参数）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Union

from codeagent_runtime.llm.protocol import CompletionRequest

FakeResponse = Union[str, BaseException]


@dataclass
class FakeCompletionBackend:
    """按脚本回放响应的 backend。"""

    responses: Sequence[FakeResponse] = ()
    calls: List[CompletionRequest] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._queue: List[FakeResponse] = list(self.responses)

    async def complete(self, request: CompletionRequest) -> str:
        self.calls.append(request)
        if not self._queue:
            raise RuntimeError("FakeCompletionBackend: no scripted response left")
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


__all__ = ["FakeCompletionBackend", "FakeResponse"]
