"""
HITLManager：异步人工确认（human-in-the-loop）中枢。

状态机（每个 confirmation_id）：
- Pending -> Resolved(choice)   收到匹配的 `tool_confirmation_response`
- Pending -> TimedOut(default)  超时（默认选择缺省为 no）
- 一次转换即终态；先到者生效，后到者为 no-op。

约束：
- pending map 是“是否仍在等待人类”的唯一事实来源，只由本管理器修改；
- 未知 confirmation_id 的回应记录 warning 后忽略，不得抛异常；
- `yes_and_remember` 对 shell 命令会把基础命令名写入 allowlist；持久化失败只记日志（审批已生效）；
- 超时时不伪造回应事件，而是发出一条 `system_info`（level=warning）供 UI 关闭确认面板。
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from codeagent_runtime.config.loader import HitlConfig
from codeagent_runtime.core.contracts import (
    BaseEvent,
    ConfirmationChoice,
    ConfirmationOptions,
    SystemInfoEvent,
    ToolConfirmationRequestEvent,
    ToolConfirmationResponseEvent,
)
from codeagent_runtime.core.utils import now_ms
from codeagent_runtime.events.bus import EventBus, Subscription
from codeagent_runtime.safety.allowlist import AllowlistStore
from codeagent_runtime.safety.policy import extract_command_name
from codeagent_runtime.tools.protocol import ToolNames

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _remember_command(store: AllowlistStore, command: str) -> bool:
    """把命令名追加到 allowlist（已存在则跳过）；返回是否新增。"""

    current = [str(x).lower() for x in store.get_allowlist()]
    if command in current:
        return False
    store.append_allowlist(command)
    return True


@dataclass
class PendingConfirmation:
    """
    一次待确认请求。

    字段：
    - confirmation_id：唯一标识
    - tool_name：工具名（用于日志/超时提示）
    - future：解析句柄（只会被 set_result 一次）
    - options：本次请求生效的选项（已合并默认配置）
    - timer：超时定时器（注册后立即设置）
    """

    confirmation_id: str
    tool_name: str
    future: "asyncio.Future[ConfirmationChoice]"
    options: ConfirmationOptions
    timer: Optional[asyncio.TimerHandle] = None
    created_at_monotonic: float = field(default_factory=time.monotonic)


class HITLManager:
    """
    人工确认管理器。

    参数：
    - bus：事件总线（发出请求事件、监听回应事件）
    - allowlist_store：`yes_and_remember` 的持久化目标（可选；缺失时只记录日志）
    - config：默认超时/默认选择/是否展示“记住”选项
    """

    def __init__(
        self,
        bus: EventBus,
        allowlist_store: Optional[AllowlistStore] = None,
        *,
        config: Optional[HitlConfig] = None,
    ) -> None:
        self._bus = bus
        self._allowlist_store = allowlist_store
        self._config = config or HitlConfig()
        self._pending: Dict[str, PendingConfirmation] = {}
        self._counter = 0
        self._subscription: Optional[Subscription] = bus.subscribe(
            "tool_confirmation_response", self._handle_confirmation_response
        )

    def close(self) -> None:
        """停止监听回应事件（不会解析仍在等待的确认）。"""

        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def pending_ids(self) -> List[str]:
        """仍在等待人类回应的 confirmation_id（按创建顺序）。"""

        return list(self._pending.keys())

    def has_pending(self, confirmation_id: str) -> bool:
        return confirmation_id in self._pending

    async def request_approval(
        self,
        tool_name: str,
        args: Mapping[str, Any],
        description: str,
        options: Optional[ConfirmationOptions] = None,
    ) -> bool:
        """
        请求人工确认，返回是否批准。

        说明：
        - `yes_and_remember` 视为批准，并额外把命令写入 allowlist。
        """

        choice = await self.request_approval_with_choice(tool_name, args, description, options)
        if choice == ConfirmationChoice.YES_AND_REMEMBER:
            await self._add_to_allowlist(tool_name, args)
            return True
        return choice == ConfirmationChoice.YES

    async def request_approval_with_choice(
        self,
        tool_name: str,
        args: Mapping[str, Any],
        description: str,
        options: Optional[ConfirmationOptions] = None,
    ) -> ConfirmationChoice:
        """
        发出确认请求并挂起，直到收到回应或超时。

        返回：
        - ConfirmationChoice：回应中的选择，或超时后的默认选择（缺省 no）
        """

        effective = self._effective_options(options)
        confirmation_id = self._generate_confirmation_id()
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[ConfirmationChoice] = loop.create_future()
        pending = PendingConfirmation(
            confirmation_id=confirmation_id,
            tool_name=str(tool_name),
            future=fut,
            options=effective,
        )
        # 先注册再发事件：同步订阅者可能在 emit 内直接回应
        self._pending[confirmation_id] = pending
        timeout_ms = effective.timeout or self._config.timeout_ms
        pending.timer = loop.call_later(timeout_ms / 1000.0, self._on_timeout, confirmation_id)

        self._bus.emit(
            ToolConfirmationRequestEvent(
                confirmation_id=confirmation_id,
                tool_name=str(tool_name),
                args=dict(args or {}),
                description=str(description or ""),
                options=effective,
            )
        )

        try:
            return await fut
        finally:
            # 调用方被取消时清理，避免泄露 pending/timer
            if not fut.done() or fut.cancelled():
                self._discard(confirmation_id, pending)

    def respond(self, confirmation_id: str, choice: ConfirmationChoice) -> None:
        """在总线上发出一条回应事件（UI/测试的便捷入口）。"""

        choice = ConfirmationChoice(choice)
        self._bus.emit(
            ToolConfirmationResponseEvent(
                confirmation_id=confirmation_id,
                approved=choice != ConfirmationChoice.NO,
                choice=choice,
            )
        )

    def _effective_options(self, options: Optional[ConfirmationOptions]) -> ConfirmationOptions:
        opts = options or ConfirmationOptions()
        return ConfirmationOptions(
            show_remember_option=(
                opts.show_remember_option
                if opts.show_remember_option is not None
                else self._config.show_remember_option
            ),
            default_choice=opts.default_choice if opts.default_choice is not None else self._config.default_choice,
            timeout=opts.timeout if opts.timeout is not None and opts.timeout > 0 else self._config.timeout_ms,
        )

    def _handle_confirmation_response(self, event: BaseEvent) -> None:
        if not isinstance(event, ToolConfirmationResponseEvent):
            return
        pending = self._pending.pop(event.confirmation_id, None)
        if pending is None:
            logger.warning("Received response for unknown confirmation ID: %s", event.confirmation_id)
            return
        if pending.timer is not None:
            pending.timer.cancel()
        if pending.future.done():
            return

        if event.choice is not None:
            choice = ConfirmationChoice(event.choice)
        else:
            choice = ConfirmationChoice.YES if event.approved else ConfirmationChoice.NO
        pending.future.set_result(choice)

    def _on_timeout(self, confirmation_id: str) -> None:
        pending = self._pending.pop(confirmation_id, None)
        if pending is None or pending.future.done():
            return

        choice = pending.options.default_choice or ConfirmationChoice.NO
        logger.warning(
            "Confirmation %s for %s timed out after %sms; using %s",
            confirmation_id,
            pending.tool_name,
            pending.options.timeout,
            choice.value,
        )
        pending.future.set_result(choice)
        self._bus.emit(
            SystemInfoEvent(
                level="warning",
                message=f"Confirmation for {pending.tool_name} timed out; using default choice '{choice.value}'",
                context={
                    "confirmation_id": confirmation_id,
                    "tool_name": pending.tool_name,
                    "choice": choice.value,
                    "reason": "timeout",
                },
            )
        )

    def _discard(self, confirmation_id: str, pending: PendingConfirmation) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
        if self._pending.get(confirmation_id) is pending:
            del self._pending[confirmation_id]

    async def _add_to_allowlist(self, tool_name: str, args: Mapping[str, Any]) -> None:
        if tool_name != ToolNames.SHELL_EXECUTOR:
            return
        command = extract_command_name(str((args or {}).get("command") or ""))
        if not command:
            return
        if self._allowlist_store is None:
            logger.warning("No allowlist store configured; cannot remember %r", command)
            return
        try:
            # store 可能同步读写文件：放到工作线程，避免阻塞事件循环
            added = await asyncio.to_thread(_remember_command, self._allowlist_store, command)
        except Exception:
            logger.exception("Failed to add command %r to allowlist", command)
            return
        if added:
            logger.info("Added %r to allowlist", command)

    def _generate_confirmation_id(self) -> str:
        self._counter += 1
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
        return f"conf_{now_ms()}_{self._counter}_{suffix}"


__all__ = ["HITLManager", "PendingConfirmation"]
