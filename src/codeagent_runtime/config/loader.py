"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）；内置默认配置总是最先合并。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
- 默认配置：`codeagent_runtime/assets/default.yaml`
"""

from __future__ import annotations

from copy import deepcopy
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from codeagent_runtime.core.contracts import ConfirmationChoice
from codeagent_runtime.core.errors import ConfigError


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    - list：整体覆盖（不做去重/拼接）
    """

    for key, overlay_value in overlay.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(overlay_value, Mapping)
        ):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class ExecutionConfig(BaseModel):
    """执行模式（code=正常执行，plan=写操作仅模拟）。"""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["code", "plan"] = Field(default="code")


class CompressionConfig(BaseModel):
    """
    上下文压缩策略。

    说明：
    - token 数超过 `max_tokens * force_threshold`：无条件压缩；
    - 超过 `max_tokens * intelligent_threshold`：距离上次压缩满 `min_compression_interval_ms` 后询问模型；
    - 最近 `preserve_recent_count` 条消息永远原样保留。
    """

    model_config = ConfigDict(extra="forbid")

    max_tokens: int = Field(default=30_000, ge=1)
    preserve_recent_count: int = Field(default=8, ge=0)
    intelligent_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    force_threshold: float = Field(default=0.95, gt=0.0, le=1.0)
    min_compression_interval_ms: int = Field(default=30_000, ge=0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "CompressionConfig":
        """intelligent_threshold 不得高于 force_threshold。"""

        if self.intelligent_threshold > self.force_threshold:
            raise ValueError("context.compression.intelligent_threshold must be <= force_threshold")
        return self


class ContextConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    compression: CompressionConfig = Field(default_factory=CompressionConfig)


class HitlConfig(BaseModel):
    """
    人工确认（HITL）默认参数。

    说明：
    - `timeout_ms` 必须为正数：回应事件不保证会到达，超时是唯一兜底；
    - 超时时按 `default_choice` 处理（缺省为 no）。
    """

    model_config = ConfigDict(extra="forbid")

    timeout_ms: int = Field(default=300_000, ge=1)
    default_choice: Optional[ConfirmationChoice] = None
    show_remember_option: bool = True

    @field_validator("default_choice", mode="before")
    @classmethod
    def _yaml_bool_choice(cls, v: Any) -> Any:
        """YAML 1.1 会把裸 yes/no 解析为 bool：映射回对应选择。"""

        if isinstance(v, bool):
            return ConfirmationChoice.YES if v else ConfirmationChoice.NO
        return v


class ShellSecurityConfig(BaseModel):
    """shell 命令安全配置（allowlist/blocklist + 兜底开关）。"""

    model_config = ConfigDict(extra="forbid")

    allowlist: List[str] = Field(default_factory=list)
    blocklist: List[str] = Field(default_factory=list)
    allow_unlisted_commands: bool = True
    allow_dangerous_commands: bool = False


class ShellExecutorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    security: ShellSecurityConfig = Field(default_factory=ShellSecurityConfig)


class ToolsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    shell_executor: ShellExecutorConfig = Field(default_factory=ShellExecutorConfig)


class SummarizerConfig(BaseModel):
    """摘要协作方（LLM）参数。"""

    model_config = ConfigDict(extra="forbid")

    model: str = Field(default="default")
    decision_min_messages: int = Field(default=20, ge=0)
    fallback_min_messages: int = Field(default=15, ge=0)
    preview_chars: int = Field(default=200, ge=1)


class RuntimeConfig(BaseModel):
    """运行时配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    hitl: HitlConfig = Field(default_factory=HitlConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise FileNotFoundError(f"配置文件不存在：{path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}", details={"path": str(path)})
    return data


def load_default_config_dict() -> Dict[str, Any]:
    """读取包内默认配置（assets/default.yaml）。"""

    raw = resources.files("codeagent_runtime").joinpath("assets/default.yaml").read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    return data if isinstance(data, dict) else {}


def load_config_dicts(config_dicts: list[Dict[str, Any]], *, include_defaults: bool = True) -> RuntimeConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `RuntimeConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    - include_defaults：是否先合并包内默认配置
    """

    merged: Dict[str, Any] = load_default_config_dict() if include_defaults else {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return RuntimeConfig.model_validate(merged)


def load_config(config_paths: list[Path]) -> RuntimeConfig:
    """
    加载并合并多个配置文件，返回校验后的 `RuntimeConfig`。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    overlays: list[Dict[str, Any]] = []
    for path in config_paths:
        overlays.append(_load_yaml_file(Path(path)))
    return load_config_dicts(overlays)
