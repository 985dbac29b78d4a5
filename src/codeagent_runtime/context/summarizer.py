"""
LlmContextSummarizer：上下文压缩的“摘要协作方”（LLM-backed）。

职责：
- `should_compress`：在 intelligent 阈值区间内询问模型“现在压缩是否合适”；
- `compress`：把旧历史合并为一条结构化摘要消息。

降级策略（失败不向外抛）：
- 决策失败：回退到“历史条数 > fallback_min_messages”；
- 压缩失败：记录日志并原样返回输入（压缩器据此放弃本次压缩）。
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from codeagent_runtime.config.loader import SummarizerConfig
from codeagent_runtime.core.errors import SummarizerError
from codeagent_runtime.llm.protocol import CompletionBackend, CompletionRequest
from codeagent_runtime.prompts.compaction import (
    COMPRESSED_MESSAGE_PREFIX,
    build_compression_messages,
    build_decision_messages,
    extract_json_object,
)

logger = logging.getLogger(__name__)

_DECISION_RECENT_MESSAGES = 20
_JSON_RESPONSE_FORMAT = {"type": "json_object"}

ModelT = TypeVar("ModelT", bound=BaseModel)


class CompressionDecision(BaseModel):
    """模型对“是否压缩”的判断。"""

    model_config = ConfigDict(extra="ignore")

    should_compress: bool
    reasoning: str = ""
    confidence: Literal["high", "medium", "low"] = "medium"


class CompressionResult(BaseModel):
    """结构化摘要（序列化后作为压缩消息正文）。"""

    model_config = ConfigDict(extra="ignore")

    overall_goals: str = ""
    key_knowledge: str = ""
    file_changes: str = ""
    task_progress: str = ""
    recent_outcomes: str = ""
    context_quality: Literal["high", "medium", "low"] = "medium"


class LlmContextSummarizer:
    """
    基于 CompletionBackend 的摘要协作方。

    参数：
    - backend：LLM backend（外部实现）
    - config：模型名与决策/回退阈值
    """

    def __init__(self, backend: CompletionBackend, config: Optional[SummarizerConfig] = None) -> None:
        self._backend = backend
        self._config = config or SummarizerConfig()

    async def _request_json(self, messages: List[Dict[str, Any]], model_cls: Type[ModelT]) -> ModelT:
        """发起一次 JSON 补全并校验为 model_cls；任何失败统一包装为 SummarizerError。"""

        request = CompletionRequest(
            model=self._config.model,
            messages=messages,
            response_format=_JSON_RESPONSE_FORMAT,
        )
        try:
            text = await self._backend.complete(request)
        except Exception as exc:
            raise SummarizerError(f"completion request failed: {exc}") from exc
        try:
            return model_cls.model_validate_json(extract_json_object(text))
        except (ValidationError, ValueError) as exc:
            raise SummarizerError(f"unparseable {model_cls.__name__}: {exc}") from exc

    async def should_compress(self, token_count: int, history: List[Dict[str, Any]]) -> bool:
        """询问模型现在是否适合压缩；历史过短时直接返回 False。"""

        if len(history) < self._config.decision_min_messages:
            return False

        messages = build_decision_messages(
            total_tokens=token_count,
            history=history,
            recent_count=_DECISION_RECENT_MESSAGES,
            preview_chars=self._config.preview_chars,
        )
        try:
            decision = await self._request_json(messages, CompressionDecision)
        except SummarizerError as exc:
            fallback = len(history) > self._config.fallback_min_messages
            logger.warning("Compression decision failed (%s); falling back to %s", exc, fallback)
            return fallback

        logger.debug(
            "Compression decision: %s (confidence=%s) %s",
            decision.should_compress,
            decision.confidence,
            decision.reasoning,
        )
        return decision.should_compress

    async def compress(self, history: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        把 history 合并为一条摘要消息。

        返回：
        - 成功：`[{"role": "user", "content": "This is compressed message: <json>"}]`
        - 空历史或失败：原样返回 history
        """

        if not history:
            return history

        try:
            result = await self._request_json(build_compression_messages(history), CompressionResult)
        except SummarizerError:
            logger.exception("Context compression failed; keeping original history")
            return history

        payload = json.dumps(result.model_dump(), ensure_ascii=False)
        return [{"role": "user", "content": COMPRESSED_MESSAGE_PREFIX + payload}]


__all__ = ["CompressionDecision", "CompressionResult", "LlmContextSummarizer"]
