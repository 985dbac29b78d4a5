"""配置（YAML overlay + pydantic 校验）。"""

from __future__ import annotations

from codeagent_runtime.config.loader import (
    CompressionConfig,
    HitlConfig,
    RuntimeConfig,
    ShellSecurityConfig,
    load_config,
    load_config_dicts,
)

__all__ = [
    "CompressionConfig",
    "HitlConfig",
    "RuntimeConfig",
    "ShellSecurityConfig",
    "load_config",
    "load_config_dicts",
]
