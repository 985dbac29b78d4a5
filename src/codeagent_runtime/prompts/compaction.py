"""
Compaction prompts：压缩决策与压缩摘要的提示词 + 辅助函数。

目标：
- 决策 prompt：判断“现在压缩是否合适”，输出 `CompressionDecision` JSON；
- 压缩 prompt：把旧历史合并成一份结构化摘要，输出 `CompressionResult` JSON；
- 默认使用中文提示词，强调不泄露 secrets、不编造事实、保留精确的路径/命令/报错。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List


COMPRESSION_DECISION_PROMPT_ZH = """你正在评估一段编码 agent 的对话上下文，判断现在是否应该压缩。

评估维度：
- 信息密度：是否存在重复的工具调用、冗长输出或冗余信息？
- 任务进展：对话是在收尾，还是仍在积极推进？
- 上下文价值：现在压缩会不会丢掉正在使用的工作上下文？
- 对话节奏：这里是否是一个自然的分界点？

建议压缩：已完成的子任务带有大量中间输出；重复的工具调用；清晰的任务边界。
避免压缩：正处于复杂工作的中途；最近的上下文包含未解决的错误或半成品；用户正在基于最近的细节继续推进。

只输出 JSON：
{"should_compress": true/false, "reasoning": "简要说明", "confidence": "high/medium/low"}
"""


COMPRESSION_PROMPT_ZH = """你是一个“上下文压缩器（Context Compressor）”。

你的任务是把给定的对话历史（可能包含上一次压缩的摘要）合并成一份新的结构化摘要，供 agent 继续完成软件工程任务。

必须保留：
- 项目结构、关键文件、技术栈；
- 用户目标、当前进度与阻塞点；
- 重要的配置、依赖与发现的模式；
- 决策历史（为什么选这个方案、哪些尝试失败了）；
- 读过/修改过/新建的文件及其用途。

硬性约束：
- 合并而不是替换：已有摘要中的信息要与新历史整合；
- 保持技术精度：文件路径、命令、报错信息原样保留；
- 不要输出任何密钥、token、密码等敏感信息；若出现请用 <redacted> 替代；
- 不要编造不存在的事实。

只输出 JSON，字段：
- overall_goals：用户的主要目标
- key_knowledge：关键事实、路径、命令、配置
- file_changes：读过/修改/新建的重要文件
- task_progress：已完成 / 进行中 / 下一步
- recent_outcomes：最近动作的结果、错误、当前状态
- context_quality：信息保留程度（high/medium/low）
"""


COMPRESSED_MESSAGE_PREFIX = "This is compressed message: "


def _preview(text: str, *, max_chars: int) -> str:
    """截取前 max_chars 个字符（超出时追加省略号）。"""

    s = str(text or "")
    if len(s) <= int(max_chars):
        return s
    return s[: int(max_chars)] + "..."


def build_decision_messages(
    *,
    total_tokens: int,
    history: List[Dict[str, Any]],
    recent_count: int,
    preview_chars: int,
) -> List[Dict[str, Any]]:
    """
    构造压缩决策的 messages。

    参数：
    - total_tokens：当前历史 token 总数
    - history：完整历史
    - recent_count：只把最近 N 条消息的预览交给模型
    - preview_chars：每条消息预览的最大字符数
    """

    recent = history[-int(recent_count):] if recent_count > 0 else []
    context_info = {
        "total_tokens": int(total_tokens),
        "recent_history_length": len(history),
        "recent_messages": [
            {
                "role": str(m.get("role") or ""),
                "content_preview": _preview(str(m.get("content") or ""), max_chars=preview_chars),
            }
            for m in recent
        ],
    }
    return [
        {"role": "system", "content": COMPRESSION_DECISION_PROMPT_ZH.strip()},
        {"role": "user", "content": "Context to evaluate:\n" + json.dumps(context_info, ensure_ascii=False, indent=2)},
    ]


def build_compression_messages(history: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """构造压缩摘要的 messages（历史以紧凑 JSON 提交）。"""

    history_text = json.dumps(history, ensure_ascii=False, separators=(",", ":"))
    return [
        {"role": "system", "content": COMPRESSION_PROMPT_ZH.strip()},
        {"role": "user", "content": "history to compress:\n" + history_text},
    ]


def extract_json_object(text: str) -> str:
    """
    从模型输出中截取 JSON object 文本。

    说明：
    - 模型常把 JSON 包在 ```json 代码块或前后说明文字里；这里取第一个 `{` 到最后一个 `}`。
    """

    s = str(text or "").strip()
    start = s.find("{")
    end = s.rfind("}")
    if start < 0 or end < start:
        raise ValueError("no JSON object found in model output")
    return s[start : end + 1]
