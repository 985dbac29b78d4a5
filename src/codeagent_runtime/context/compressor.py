"""
ContextCompressor：对话历史的 token 预算治理。

决策流程（每次模型调用前）：
1. 历史条数 <= preserve_recent_count：原样返回；
2. 用 tokenizer 计算全部消息 content 的 token 总数；
3. 超过 `max_tokens * force_threshold`：无条件压缩；
4. 超过 `max_tokens * intelligent_threshold`：距上次压缩不足 `min_compression_interval_ms` 则跳过，
   否则询问摘要协作方，只有它同意才压缩；
5. 压缩：前缀（head）交给摘要协作方合并，尾部最近 N 条原样保留，记录压缩时间；
6. 其它情况原样返回（不复制）。

约束：
- 永远不修改传入的 list；压缩结果是新 list；
- 最近 preserve_recent_count 条消息不会被删除或重排；压缩后条数必须严格减少。
- 同一压缩器上的并发调用串行经过“询问 + 压缩”，间隔限制对重叠调用同样生效。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from codeagent_runtime.config.loader import CompressionConfig
from codeagent_runtime.context.tokens import Tokenizer
from codeagent_runtime.core.contracts import SystemInfoEvent
from codeagent_runtime.core.utils import now_ms
from codeagent_runtime.events.bus import EventBus

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


@runtime_checkable
class ContextSummarizer(Protocol):
    """摘要协作方协议（LlmContextSummarizer 即其默认实现）。"""

    async def should_compress(self, token_count: int, history: List[Message]) -> bool:
        ...

    async def compress(self, history: List[Message]) -> List[Message]:
        ...


class ContextCompressor:
    """
    上下文压缩器（每个会话一个）。

    参数：
    - summarizer：摘要协作方（询问 + 压缩）
    - tokenizer：确定性 token 计数
    - config：压缩阈值与间隔
    - bus：可选；压缩后发出 `system_info`
    - clock：返回毫秒时间戳的函数（测试可注入）
    """

    def __init__(
        self,
        summarizer: ContextSummarizer,
        tokenizer: Tokenizer,
        *,
        config: Optional[CompressionConfig] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._summarizer = summarizer
        self._tokenizer = tokenizer
        self._config = config or CompressionConfig()
        self._bus = bus
        self._clock = clock or now_ms
        self._last_compression_time: Optional[int] = None
        self._compressions_performed = 0
        self._lock = asyncio.Lock()

    @property
    def config(self) -> CompressionConfig:
        return self._config

    @property
    def last_compression_time(self) -> Optional[int]:
        """上次成功压缩的时间（毫秒；从未压缩为 None）。"""

        return self._last_compression_time

    @property
    def compressions_performed(self) -> int:
        return self._compressions_performed

    def count_tokens(self, history: List[Message]) -> int:
        """计算全部消息 content 拼接后的 token 数。"""

        text = "".join(str(m.get("content") or "") for m in history)
        return self._tokenizer.count_tokens(text)

    async def maybe_compress(self, history: List[Message]) -> List[Message]:
        """
        按阈值策略决定是否压缩，返回（可能是新的）历史。

        返回：
        - 未触发压缩：原 list 本身
        - 已压缩：summarized_head + 原样尾部 的新 list
        """

        cfg = self._config
        if len(history) <= cfg.preserve_recent_count:
            return history

        token_count = self.count_tokens(history)
        force_limit = cfg.max_tokens * cfg.force_threshold
        intelligent_limit = cfg.max_tokens * cfg.intelligent_threshold

        if token_count > force_limit:
            reason = "force"
        elif token_count > intelligent_limit:
            reason = "intelligent"
        else:
            return history

        # 询问与压缩串行执行：并发调用在拿到锁后重新检查间隔
        async with self._lock:
            if reason == "intelligent":
                if self._within_interval():
                    logger.debug(
                        "Skipping compression: last compression was less than %sms ago",
                        cfg.min_compression_interval_ms,
                    )
                    return history
                if not await self._ask_summarizer(token_count, history):
                    return history
            return await self._compress(history, token_count=token_count, reason=reason)

    def _within_interval(self) -> bool:
        if self._last_compression_time is None:
            return False
        return self._clock() - self._last_compression_time < self._config.min_compression_interval_ms

    async def _ask_summarizer(self, token_count: int, history: List[Message]) -> bool:
        try:
            return bool(await self._summarizer.should_compress(token_count, history))
        except Exception:
            logger.exception("Compression decision failed; skipping compression")
            return False

    async def _compress(self, history: List[Message], *, token_count: int, reason: str) -> List[Message]:
        split = len(history) - self._config.preserve_recent_count
        head = history[:split]
        tail = history[split:]

        try:
            summarized = list(await self._summarizer.compress(head))
        except Exception:
            logger.exception("Context compression failed; keeping original history")
            return history

        compressed = summarized + list(tail)
        if len(compressed) >= len(history):
            logger.warning(
                "Compression did not shrink history (%d -> %d messages); keeping original",
                len(history),
                len(compressed),
            )
            return history

        self._last_compression_time = self._clock()
        self._compressions_performed += 1
        compressed_tokens = self.count_tokens(compressed)
        logger.info(
            "Context compressed (%s): %d -> %d messages, %d -> %d tokens",
            reason,
            len(history),
            len(compressed),
            token_count,
            compressed_tokens,
        )
        if self._bus is not None:
            self._bus.emit(
                SystemInfoEvent(
                    level="info",
                    message=f"Context compressed: {len(history)} -> {len(compressed)} messages",
                    context={
                        "reason": reason,
                        "original_messages": len(history),
                        "compressed_messages": len(compressed),
                        "original_tokens": token_count,
                        "compressed_tokens": compressed_tokens,
                    },
                )
            )
        return compressed


__all__ = ["ContextCompressor", "ContextSummarizer", "Message"]
