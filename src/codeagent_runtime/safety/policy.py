"""
命令安全策略（shell 命令的读/写分类 + allow/confirm/block 校验）。

说明：
- `is_write_operation` 是 ToolInterceptor 在 plan 模式下依赖的分类器；
- `validate_command` 给出确定性的校验结论（allowed / requires_confirmation / reason）；
- allowlist 从 `AllowlistStore` 实时读取：`yes_and_remember` 追加的命令立即生效。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from codeagent_runtime.config.loader import ShellSecurityConfig
from codeagent_runtime.safety.allowlist import AllowlistStore

_EXECUTABLE_EXT_RE = re.compile(r"\.(exe|cmd|bat)$", re.IGNORECASE)
_PATH_SEP_RE = re.compile(r"[/\\]")
# 重定向/管道/后台：视为可能写文件
_WRITE_OPERATOR_RE = re.compile(r"[>&|]")

DANGEROUS_COMMANDS: FrozenSet[str] = frozenset(
    {
        "rm", "rmdir", "del", "deltree",
        "sudo", "su",
        "chmod", "chown", "chgrp",
        "dd", "format", "fdisk", "mkfs",
        "shutdown", "reboot", "halt", "poweroff",
        "kill", "killall", "pkill",
        "crontab", "systemctl", "service",
        "mount", "umount", "fsck",
        "iptables", "ufw", "firewall-cmd",
    }
)

ALWAYS_ALLOWED_COMMANDS: FrozenSet[str] = frozenset(
    {
        "cat", "head", "tail", "grep", "less", "more", "wc", "sort", "uniq",
        "ls", "pwd", "whoami", "date", "echo", "which", "whereis",
        "ps", "top", "df", "du", "free", "uname", "env", "printenv",
    }
)

WRITE_OPERATION_COMMANDS: FrozenSet[str] = frozenset(
    {
        "cp", "mv", "mkdir", "touch", "tee", "dd",
        "echo", "printf", "sed", "awk",
        "git", "npm", "yarn", "pnpm",
        "node", "python", "pip",
        "make", "cmake", "gcc", "javac",
        "tar", "zip", "unzip", "gzip",
    }
)

_BLOCKED_SUGGESTIONS = {
    "rm": "Use trash-cli or similar for safe deletion",
    "sudo": "Avoid admin privileges or explicitly enable in config",
    "chmod": "Confirm necessity of permission changes",
    "dd": "Use safer disk tools",
    "kill": "Use process manager or Ctrl+C to terminate",
}


def extract_command_name(command_line: str) -> Optional[str]:
    """
    提取命令行的基础命令名。

    规则：
    - 取首个空白分隔 token；
    - 去掉路径部分（`/` 与 `\\`）；
    - 去掉 `.exe/.cmd/.bat` 扩展名并转小写。

    返回：
    - 命令名；输入为空/非字符串时返回 None
    """

    if not isinstance(command_line, str):
        return None
    parts = command_line.strip().split()
    if not parts:
        return None
    name = _PATH_SEP_RE.split(parts[0])[-1]
    name = _EXECUTABLE_EXT_RE.sub("", name).lower()
    return name or None


@dataclass(frozen=True)
class CommandClassification:
    """
    命令分类结果。

    字段：
    - is_read_only：只读命令
    - category：read|write|execute|system
    - operation_type：read|write|execute
    - requires_confirmation：是否建议人工确认
    """

    is_read_only: bool
    category: str
    operation_type: str
    requires_confirmation: bool


@dataclass(frozen=True)
class CommandValidationResult:
    """命令校验结论（确定性）。"""

    allowed: bool
    command: str
    reason: Optional[str] = None
    suggestion: Optional[str] = None
    requires_confirmation: bool = False
    operation_type: Optional[str] = None


class CommandSecurityPolicy:
    """
    shell 命令安全策略。

    参数：
    - security：shell 安全配置（blocklist 与兜底开关；store 缺失时 allowlist 也从这里读）
    - allowlist_store：allowlist 的实时来源（可选）
    """

    def __init__(
        self,
        security: Optional[ShellSecurityConfig] = None,
        *,
        allowlist_store: Optional[AllowlistStore] = None,
    ) -> None:
        self._security = security or ShellSecurityConfig()
        self._allowlist_store = allowlist_store

    def _allowlist(self) -> List[str]:
        if self._allowlist_store is not None:
            return list(self._allowlist_store.get_allowlist())
        return list(self._security.allowlist)

    @staticmethod
    def _in_list(command: str, items: List[str]) -> bool:
        return any(str(x).lower() == command.lower() for x in items)

    def is_write_operation(self, command_line: str, root_command: Optional[str] = None) -> bool:
        """判断命令是否可能修改文件系统（写命令集合或包含重定向/管道）。"""

        command = root_command or extract_command_name(command_line) or ""
        if command in WRITE_OPERATION_COMMANDS:
            return True
        return bool(_WRITE_OPERATOR_RE.search(str(command_line or "")))

    def classify_command(self, command_line: str) -> CommandClassification:
        """对命令做读/写/执行/系统分类。"""

        root = extract_command_name(command_line) or ""
        if root in ALWAYS_ALLOWED_COMMANDS:
            return CommandClassification(True, "read", "read", False)
        if root in DANGEROUS_COMMANDS:
            return CommandClassification(False, "system", "execute", True)
        if self.is_write_operation(command_line, root):
            return CommandClassification(False, "write", "write", True)
        return CommandClassification(False, "execute", "execute", True)

    def validate_command(self, command_line: str) -> CommandValidationResult:
        """
        校验一条命令是否允许执行。

        决策顺序：
        1) 空/无法解析 → 不允许
        2) 常用只读命令 → 允许
        3) blocklist → 不允许（附建议）
        4) 危险命令且未开启 allow_dangerous_commands → 不允许
        5) allowlist → 允许
        6) allow_unlisted_commands → 允许但需要人工确认
        7) 其它 → 不允许且需要人工确认
        """

        if not isinstance(command_line, str):
            return CommandValidationResult(allowed=False, command="", reason="Invalid command input")
        if not command_line.strip():
            return CommandValidationResult(allowed=False, command="", reason="Empty command")

        root = extract_command_name(command_line)
        if not root:
            return CommandValidationResult(allowed=False, command="", reason="Cannot parse command")

        classification = self.classify_command(command_line)

        if root in ALWAYS_ALLOWED_COMMANDS:
            return CommandValidationResult(allowed=True, command=root, operation_type="read")

        if self._in_list(root, self._security.blocklist):
            return CommandValidationResult(
                allowed=False,
                command=root,
                reason=f"Command '{root}' is blocked",
                suggestion=_BLOCKED_SUGGESTIONS.get(root),
            )

        if root in DANGEROUS_COMMANDS and not self._security.allow_dangerous_commands:
            return CommandValidationResult(
                allowed=False,
                command=root,
                reason=f"'{root}' is a dangerous command",
                suggestion="Enable allow_dangerous_commands in config if needed",
            )

        if self._in_list(root, self._allowlist()):
            return CommandValidationResult(allowed=True, command=root, operation_type=classification.operation_type)

        if self._security.allow_unlisted_commands:
            return CommandValidationResult(
                allowed=True,
                command=root,
                requires_confirmation=True,
                operation_type=classification.operation_type,
            )

        return CommandValidationResult(
            allowed=False,
            command=root,
            reason=f"Command '{root}' requires confirmation",
            requires_confirmation=True,
            operation_type=classification.operation_type,
        )


__all__ = [
    "ALWAYS_ALLOWED_COMMANDS",
    "CommandClassification",
    "CommandSecurityPolicy",
    "CommandValidationResult",
    "DANGEROUS_COMMANDS",
    "WRITE_OPERATION_COMMANDS",
    "extract_command_name",
]
