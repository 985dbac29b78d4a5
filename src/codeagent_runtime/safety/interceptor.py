"""
ToolInterceptor：每次工具调用前的门禁。

流程：
1) 读取当前执行模式；
2) plan 模式下按固定规则判定写操作；写操作不执行，返回结构化的模拟结果；
3) 其它情况委托外部执行方执行并等待结果；
4) 执行期异常转换为 `error` 字段；`duration_ms` 覆盖所有路径。

硬约束：
- plan 模式下，被判定为写操作的调用永远不会到达执行方；
- 分类器自身异常时按“写操作”处理（fail-closed）。
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Dict, Mapping

from codeagent_runtime.safety.modes import ExecutionMode, ExecutionModeManager
from codeagent_runtime.tools.protocol import InterceptResult, ToolAction, ToolExecutor, ToolNames, WriteClassifier

logger = logging.getLogger(__name__)

WRITE_TOOLS = frozenset({ToolNames.WRITE_FILE, ToolNames.CREATE_FILE, ToolNames.APPLY_PATCH})


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))


class ToolInterceptor:
    """
    工具调用门禁。

    参数：
    - executor：外部工具执行方
    - mode_manager：执行模式（只读）
    - classifier：shell 命令写操作分类器
    """

    def __init__(
        self,
        *,
        executor: ToolExecutor,
        mode_manager: ExecutionModeManager,
        classifier: WriteClassifier,
    ) -> None:
        self._executor = executor
        self._mode_manager = mode_manager
        self._classifier = classifier

    async def evaluate(self, action: ToolAction) -> InterceptResult:
        """
        评估并（在允许时）执行一次工具调用。

        返回：
        - InterceptResult：result/error/duration_ms
        """

        started = time.monotonic()
        try:
            mode = self._mode_manager.get_current_mode()
            if mode == ExecutionMode.PLAN and self.is_write_operation(action.tool, action.args):
                logger.debug("Plan mode blocked write tool %s", action.tool)
                return InterceptResult(result=self._simulate(action), duration_ms=_elapsed_ms(started))

            result = self._executor.execute(action.tool, dict(action.args))
            if inspect.isawaitable(result):
                result = await result
            return InterceptResult(result=result, duration_ms=_elapsed_ms(started))
        except Exception as e:
            logger.debug("Tool %s failed", action.tool, exc_info=True)
            return InterceptResult(error=str(e) or "Unknown tool error", duration_ms=_elapsed_ms(started))

    def is_write_operation(self, tool_name: str, args: Mapping[str, Any]) -> bool:
        """
        按固定规则判定写操作。

        - write_file/create_file/apply_patch：恒为写；
        - shell_executor：分类器判定 `args.command`；
        - multi_command：任一 `args.commands[i].command` 为写即为写。
        """

        if tool_name in WRITE_TOOLS:
            return True

        args = args or {}
        if tool_name == ToolNames.SHELL_EXECUTOR:
            command = args.get("command")
            if command:
                return self._classify(str(command))
            return False

        if tool_name == ToolNames.MULTI_COMMAND:
            commands = args.get("commands") or []
            if not isinstance(commands, list):
                return False
            return any(
                isinstance(c, Mapping) and c.get("command") and self._classify(str(c["command"])) for c in commands
            )

        return False

    def _classify(self, command: str) -> bool:
        try:
            return bool(self._classifier.is_write_operation(command))
        except Exception:
            logger.warning("Write classifier failed for %r; treating as write", command, exc_info=True)
            return True

    @staticmethod
    def estimate_impact(tool_name: str, args: Mapping[str, Any]) -> str:
        """生成给人看的影响预估（按工具区分）。"""

        args = args or {}
        if tool_name in (ToolNames.WRITE_FILE, ToolNames.CREATE_FILE):
            return f"Would create/modify file: {args.get('filePath') or args.get('file_path') or args.get('path')}"
        if tool_name == ToolNames.APPLY_PATCH:
            return f"Would apply patch to: {args.get('filePath') or args.get('file_path') or args.get('path')}"
        if tool_name == ToolNames.SHELL_EXECUTOR:
            return f"Would execute command: {args.get('command')}"
        if tool_name == ToolNames.MULTI_COMMAND:
            commands = args.get("commands")
            count = len(commands) if isinstance(commands, list) else 0
            return f"Would execute {count} commands"
        return f"Would execute {tool_name} operation"

    def _simulate(self, action: ToolAction) -> Dict[str, Any]:
        return {
            "plan_mode": True,
            "simulated_operation": action.tool,
            "parameters": dict(action.args),
            "message": f"[PLAN MODE] Would execute {action.tool} - execution blocked in plan mode",
            "estimated_impact": self.estimate_impact(action.tool, action.args),
        }


__all__ = ["ToolInterceptor", "WRITE_TOOLS"]
