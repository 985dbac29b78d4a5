"""
ToolSession：外层 agent loop 使用的安全协调入口（每个会话一个）。

编排顺序（`run_tool`）：
1) 已中断：直接返回 error，不调用执行方；
2) 发出 `tool_execution_started`；
3) shell 命令走安全策略：被拒绝则阻断；需要确认则通过 HITL 询问人类；
   （plan 模式下会被模拟的写操作跳过这一步，因为它不会真正执行）
4) 委托 ToolInterceptor（plan 模式模拟 / 执行 / 错误收敛）；
5) 发出 `tool_execution_completed` 并返回结果。

另外：
- `start_task` / `complete_task`：发出任务事件并驱动 InterruptCoordinator；
- `prepare_history`：每次模型调用前交给 ContextCompressor。
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from codeagent_runtime.config.loader import RuntimeConfig
from codeagent_runtime.context.compressor import ContextCompressor, ContextSummarizer, Message
from codeagent_runtime.context.tokens import TiktokenTokenizer, Tokenizer
from codeagent_runtime.core.contracts import (
    ConfirmationOptions,
    SystemInfoEvent,
    TaskCompletedEvent,
    TaskStartedEvent,
    ToolExecutionCompletedEvent,
    ToolExecutionStartedEvent,
)
from codeagent_runtime.core.interrupt import CancellationSignal, InterruptCoordinator
from codeagent_runtime.core.utils import now_ms
from codeagent_runtime.events.bus import EventBus
from codeagent_runtime.safety.allowlist import AllowlistStore, InMemoryAllowlistStore
from codeagent_runtime.safety.hitl import HITLManager
from codeagent_runtime.safety.interceptor import ToolInterceptor
from codeagent_runtime.safety.modes import ExecutionMode, ExecutionModeManager
from codeagent_runtime.safety.policy import CommandSecurityPolicy, CommandValidationResult
from codeagent_runtime.tools.protocol import InterceptResult, ToolAction, ToolExecutor, ToolNames

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Tool execution interrupted by user"
CANCELLED_BY_USER_ERROR = "Command execution cancelled by user"


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))


def _display_title(tool_name: str, args: Mapping[str, Any]) -> str:
    if tool_name == ToolNames.SHELL_EXECUTOR:
        return f"{tool_name}: {args.get('command') or ''}".rstrip()
    if tool_name == ToolNames.MULTI_COMMAND:
        commands = args.get("commands")
        return f"{tool_name}: {len(commands) if isinstance(commands, list) else 0} commands"
    path = args.get("filePath") or args.get("file_path") or args.get("path")
    return f"{tool_name}: {path}" if path else tool_name


def _blocked_message(command: str, validation: CommandValidationResult) -> str:
    msg = f"Command blocked: {command}"
    if validation.reason:
        msg += f" ({validation.reason})"
    if validation.suggestion:
        msg += f". Suggestion: {validation.suggestion}"
    return msg


class ToolSession:
    """
    会话级编排器。

    参数：
    - bus：事件总线
    - interceptor：工具门禁（plan 模式 + 执行）
    - hitl：人工确认
    - mode_manager：执行模式
    - policy：shell 命令安全策略
    - interrupts：中断协调器
    - compressor：可选；提供时 `prepare_history` 会压缩历史
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        interceptor: ToolInterceptor,
        hitl: HITLManager,
        mode_manager: ExecutionModeManager,
        policy: CommandSecurityPolicy,
        interrupts: Optional[InterruptCoordinator] = None,
        compressor: Optional[ContextCompressor] = None,
    ) -> None:
        self.bus = bus
        self.interceptor = interceptor
        self.hitl = hitl
        self.mode_manager = mode_manager
        self.policy = policy
        self.interrupts = interrupts or InterruptCoordinator()
        self.compressor = compressor
        self._tool_counter = 0
        self._task_started_at: Optional[float] = None

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        *,
        executor: ToolExecutor,
        bus: Optional[EventBus] = None,
        allowlist_store: Optional[AllowlistStore] = None,
        summarizer: Optional[ContextSummarizer] = None,
        tokenizer: Optional[Tokenizer] = None,
    ) -> "ToolSession":
        """
        按 RuntimeConfig 显式构造全部组件。

        说明：
        - allowlist_store 缺省为内存实现（以配置中的 allowlist 为初始值）；
        - 未提供 summarizer 时不启用上下文压缩。
        """

        bus = bus or EventBus()
        security = config.tools.shell_executor.security
        store = allowlist_store or InMemoryAllowlistStore(security.allowlist)
        mode_manager = ExecutionModeManager(bus, initial=ExecutionMode(config.execution.mode))
        policy = CommandSecurityPolicy(security, allowlist_store=store)
        compressor = None
        if summarizer is not None:
            compressor = ContextCompressor(
                summarizer,
                tokenizer or TiktokenTokenizer(),
                config=config.context.compression,
                bus=bus,
            )
        return cls(
            bus=bus,
            interceptor=ToolInterceptor(executor=executor, mode_manager=mode_manager, classifier=policy),
            hitl=HITLManager(bus, store, config=config.hitl),
            mode_manager=mode_manager,
            policy=policy,
            compressor=compressor,
        )

    def start_task(self, description: str, working_directory: str) -> CancellationSignal:
        """开始新任务：换新取消信号并发出 `task_started`。"""

        signal = self.interrupts.start_task()
        self._task_started_at = time.monotonic()
        self.bus.emit(TaskStartedEvent(description=description, working_directory=working_directory))
        return signal

    def complete_task(
        self,
        *,
        success: bool,
        summary: str = "",
        error: Optional[str] = None,
        iterations: int = 0,
    ) -> TaskCompletedEvent:
        """结束任务：发出 `task_completed` 并清理中断状态。"""

        duration = _elapsed_ms(self._task_started_at) if self._task_started_at is not None else 0
        event = self.bus.emit(
            TaskCompletedEvent(
                success=success,
                duration=duration,
                iterations=iterations,
                summary=summary,
                error=error,
            )
        )
        self._task_started_at = None
        self.interrupts.reset()
        return event

    def interrupt(self) -> None:
        """中断当前任务（幂等）。"""

        already = self.interrupts.is_interrupted()
        self.interrupts.interrupt()
        if not already:
            self.bus.emit(SystemInfoEvent(level="warning", message="Task interrupted by user"))

    async def prepare_history(self, history: List[Message]) -> List[Message]:
        """模型调用前的历史整理（未配置压缩器时原样返回）。"""

        if self.compressor is None:
            return history
        return await self.compressor.maybe_compress(history)

    async def run_tool(
        self,
        tool_name: str,
        args: Optional[Dict[str, Any]] = None,
        iteration: Optional[int] = None,
    ) -> InterceptResult:
        """
        执行一次工具调用（含安全策略、人工确认与 plan 模式模拟）。

        返回：
        - InterceptResult：被中断/阻断/拒绝时 error 非空
        """

        args = dict(args or {})
        if self.interrupts.is_interrupted():
            logger.info("Skipping tool %s: task interrupted", tool_name)
            return InterceptResult(error=INTERRUPTED_ERROR)

        self._tool_counter += 1
        tool_execution_id = f"tool_{now_ms()}_{self._tool_counter}"
        title = _display_title(tool_name, args)
        started = time.monotonic()
        self.bus.emit(
            ToolExecutionStartedEvent(
                tool_name=tool_name,
                tool_execution_id=tool_execution_id,
                iteration=iteration,
                args=args,
                display_title=title,
                display_status="running",
            )
        )

        denial = await self._check_command_policy(tool_name, args)
        if denial is None and self.interrupts.is_interrupted():
            denial = INTERRUPTED_ERROR
        if denial is not None:
            result = InterceptResult(error=denial, duration_ms=_elapsed_ms(started))
        else:
            result = await self.interceptor.evaluate(ToolAction(tool=tool_name, args=args))

        self.bus.emit(
            ToolExecutionCompletedEvent(
                tool_name=tool_name,
                tool_execution_id=tool_execution_id,
                success=result.ok,
                result=result.result,
                error=result.error,
                duration=result.duration_ms,
                iteration=iteration,
                display_title=title,
                display_summary="completed" if result.ok else f"failed: {result.error}",
            )
        )
        return result

    async def _check_command_policy(self, tool_name: str, args: Dict[str, Any]) -> Optional[str]:
        """返回阻断/拒绝原因；允许执行时返回 None。"""

        if tool_name not in (ToolNames.SHELL_EXECUTOR, ToolNames.MULTI_COMMAND):
            return None
        if self.mode_manager.get_current_mode() == ExecutionMode.PLAN and self.interceptor.is_write_operation(
            tool_name, args
        ):
            # 会被模拟，不会执行
            return None

        if tool_name == ToolNames.SHELL_EXECUTOR:
            command = str(args.get("command") or "")
            validation = self.policy.validate_command(command)
            if not validation.allowed and not validation.requires_confirmation:
                return self._block(command, validation)
            if validation.requires_confirmation:
                approved = await self.hitl.request_approval(
                    tool_name,
                    args,
                    f"Execute command: {command}",
                    ConfirmationOptions(show_remember_option=True),
                )
                if not approved:
                    return CANCELLED_BY_USER_ERROR
            return None

        commands = args.get("commands")
        lines: List[str] = []
        if isinstance(commands, list):
            lines = [str(c.get("command") or "") for c in commands if isinstance(c, Mapping)]
        needs_confirmation = False
        for line in lines:
            validation = self.policy.validate_command(line)
            if not validation.allowed and not validation.requires_confirmation:
                return self._block(line, validation)
            needs_confirmation = needs_confirmation or validation.requires_confirmation
        if needs_confirmation:
            approved = await self.hitl.request_approval(
                tool_name,
                args,
                f"Execute {len(lines)} commands: " + "; ".join(lines),
                ConfirmationOptions(show_remember_option=False),
            )
            if not approved:
                return CANCELLED_BY_USER_ERROR
        return None

    def _block(self, command: str, validation: CommandValidationResult) -> str:
        message = _blocked_message(command, validation)
        logger.warning("%s", message)
        self.bus.emit(
            SystemInfoEvent(
                level="error",
                message=message,
                context={"command": command, "reason": validation.reason, "suggestion": validation.suggestion},
            )
        )
        return message


__all__ = ["CANCELLED_BY_USER_ERROR", "INTERRUPTED_ERROR", "ToolSession"]
