from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Tuple

from codeagent_runtime.config.loader import load_config_dicts
from codeagent_runtime.core.contracts import (
    BaseEvent,
    ConfirmationChoice,
    SystemInfoEvent,
    TaskCompletedEvent,
    ToolConfirmationRequestEvent,
    ToolExecutionCompletedEvent,
    ToolExecutionStartedEvent,
)
from codeagent_runtime.core.tool_session import CANCELLED_BY_USER_ERROR, INTERRUPTED_ERROR, ToolSession
from codeagent_runtime.events.bus import EventBus
from codeagent_runtime.safety.allowlist import InMemoryAllowlistStore
from codeagent_runtime.safety.modes import ExecutionMode


class _RecordingExecutor:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    async def execute(self, tool_name: str, args: Dict[str, Any]) -> Any:
        self.calls.append((tool_name, args))
        return {"stdout": "done"}


class _FakeSummarizer:
    def __init__(self) -> None:
        self.calls = 0

    async def should_compress(self, token_count: int, history: List[Dict[str, Any]]) -> bool:
        return False

    async def compress(self, history: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self.calls += 1
        return [{"role": "user", "content": "summary"}]


class _FixedTokenizer:
    def count_tokens(self, text: str) -> int:
        return 0 if text.startswith("summary") else 50_000


def _mk_session(
    *,
    mode: str = "code",
    choice: ConfirmationChoice | None = None,
    overlay: Dict[str, Any] | None = None,
    **kwargs: Any,
) -> Tuple[ToolSession, _RecordingExecutor, List[BaseEvent], List[ToolConfirmationRequestEvent]]:
    cfg = load_config_dicts([{"execution": {"mode": mode}}, overlay or {}])
    executor = _RecordingExecutor()
    session = ToolSession.from_config(cfg, executor=executor, **kwargs)
    events: List[BaseEvent] = []
    session.bus.subscribe_all(events.append)
    requests: List[ToolConfirmationRequestEvent] = []

    def on_request(ev: BaseEvent) -> None:
        assert isinstance(ev, ToolConfirmationRequestEvent)
        requests.append(ev)
        if choice is not None:
            session.hitl.respond(ev.confirmation_id, choice)

    session.bus.subscribe("tool_confirmation_request", on_request)
    return session, executor, events, requests


def _types(events: List[BaseEvent]) -> List[str]:
    return [e.type for e in events]  # type: ignore[attr-defined]


def test_read_only_command_runs_without_confirmation() -> None:
    session, executor, events, requests = _mk_session()

    out = asyncio.run(session.run_tool("shell_executor", {"command": "ls -la"}, iteration=1))

    assert out.ok
    assert out.result == {"stdout": "done"}
    assert executor.calls == [("shell_executor", {"command": "ls -la"})]
    assert requests == []
    assert _types(events) == ["tool_execution_started", "tool_execution_completed"]
    started, completed = events
    assert isinstance(started, ToolExecutionStartedEvent)
    assert isinstance(completed, ToolExecutionCompletedEvent)
    assert started.tool_execution_id == completed.tool_execution_id
    assert completed.success is True
    assert completed.iteration == 1


def test_unlisted_command_asks_and_remembers() -> None:
    store = InMemoryAllowlistStore()
    session, executor, _, requests = _mk_session(choice=ConfirmationChoice.YES_AND_REMEMBER, allowlist_store=store)

    first = asyncio.run(session.run_tool("shell_executor", {"command": "curl https://example.com"}))
    second = asyncio.run(session.run_tool("shell_executor", {"command": "curl https://example.org"}))

    assert first.ok and second.ok
    assert len(requests) == 1
    assert requests[0].options.show_remember_option is True
    assert store.get_allowlist() == ["curl"]
    assert len(executor.calls) == 2


def test_denied_confirmation_skips_executor() -> None:
    session, executor, events, requests = _mk_session(choice=ConfirmationChoice.NO)

    out = asyncio.run(session.run_tool("shell_executor", {"command": "make deploy"}))

    assert out.error == CANCELLED_BY_USER_ERROR
    assert executor.calls == []
    assert len(requests) == 1
    completed = [e for e in events if isinstance(e, ToolExecutionCompletedEvent)]
    assert completed[0].success is False
    assert completed[0].error == CANCELLED_BY_USER_ERROR


def test_dangerous_command_is_blocked_without_asking() -> None:
    session, executor, events, requests = _mk_session(choice=ConfirmationChoice.YES)

    out = asyncio.run(session.run_tool("shell_executor", {"command": "sudo reboot"}))

    assert out.error is not None and out.error.startswith("Command blocked: sudo reboot")
    assert executor.calls == []
    assert requests == []
    errors = [e for e in events if isinstance(e, SystemInfoEvent) and e.level == "error"]
    assert len(errors) == 1


def test_multi_command_blocked_when_any_command_blocked() -> None:
    session, executor, _, requests = _mk_session(
        choice=ConfirmationChoice.YES,
        overlay={"tools": {"shell_executor": {"security": {"blocklist": ["wget"]}}}},
    )

    out = asyncio.run(
        session.run_tool("multi_command", {"commands": [{"command": "ls"}, {"command": "wget http://x"}]})
    )

    assert out.error is not None and "wget" in out.error
    assert executor.calls == []
    assert requests == []


def test_multi_command_single_confirmation_without_remember_option() -> None:
    session, executor, _, requests = _mk_session(choice=ConfirmationChoice.YES)

    out = asyncio.run(
        session.run_tool("multi_command", {"commands": [{"command": "curl a"}, {"command": "make b"}]})
    )

    assert out.ok
    assert len(requests) == 1
    assert requests[0].options.show_remember_option is False
    assert len(executor.calls) == 1


def test_interrupted_task_never_reaches_executor() -> None:
    session, executor, events, _ = _mk_session()
    session.start_task("demo", "/repo")
    session.interrupt()
    session.interrupt()
    events.clear()

    out = asyncio.run(session.run_tool("write_file", {"filePath": "a.txt"}))

    assert out.error == INTERRUPTED_ERROR
    assert executor.calls == []
    assert events == []


def test_plan_mode_simulates_write_command_without_confirmation() -> None:
    session, executor, _, requests = _mk_session(mode="plan", choice=ConfirmationChoice.YES)

    out = asyncio.run(session.run_tool("shell_executor", {"command": "git commit -m wip"}))

    assert out.result["plan_mode"] is True
    assert executor.calls == []
    assert requests == []
    assert session.mode_manager.get_current_mode() == ExecutionMode.PLAN


def test_plan_mode_still_checks_policy_for_non_write_commands() -> None:
    session, executor, _, requests = _mk_session(mode="plan", choice=ConfirmationChoice.NO)

    out = asyncio.run(session.run_tool("shell_executor", {"command": "curl https://example.com"}))

    assert out.error == CANCELLED_BY_USER_ERROR
    assert len(requests) == 1
    assert executor.calls == []


def test_task_lifecycle_events_and_interrupt_reset() -> None:
    session, _, events, _ = _mk_session()

    signal = session.start_task("refactor", "/repo")
    session.interrupt()
    completed = session.complete_task(success=False, summary="stopped", error="interrupted", iterations=3)

    assert signal.cancelled is True
    assert session.interrupts.is_interrupted() is False
    assert _types(events) == ["task_started", "system_info", "task_completed"]
    assert isinstance(completed, TaskCompletedEvent)
    assert completed.iterations == 3
    assert completed.duration >= 0


def test_prepare_history_without_compressor_is_identity() -> None:
    session, _, _, _ = _mk_session()
    history = [{"role": "user", "content": "hi"}]

    assert asyncio.run(session.prepare_history(history)) is history


def test_prepare_history_delegates_to_compressor() -> None:
    summarizer = _FakeSummarizer()
    session, _, _, _ = _mk_session(summarizer=summarizer, tokenizer=_FixedTokenizer())
    history = [{"role": "user", "content": f"m{i}"} for i in range(20)]

    out = asyncio.run(session.prepare_history(history))

    assert summarizer.calls == 1
    assert len(out) == 9
    assert out[-8:] == history[-8:]


def test_default_config_arms_confirmation_timeout() -> None:
    session, executor, _, requests = _mk_session()

    async def _run() -> Tuple[int | None, bool]:
        task = asyncio.create_task(session.run_tool("shell_executor", {"command": "curl https://example.com"}))
        while not requests:
            await asyncio.sleep(0)
        confirmation_id = requests[0].confirmation_id
        armed = requests[0].options.timeout, session.hitl.has_pending(confirmation_id)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return armed

    timeout, pending = asyncio.run(_run())

    assert timeout == 300_000
    assert pending is True
    assert executor.calls == []
    assert session.hitl.pending_ids() == []


def test_unanswered_confirmation_resolves_to_default_choice() -> None:
    session, executor, events, requests = _mk_session(overlay={"hitl": {"timeout_ms": 20}})

    out = asyncio.run(asyncio.wait_for(session.run_tool("shell_executor", {"command": "curl https://example.com"}), 5.0))

    assert out.error == CANCELLED_BY_USER_ERROR
    assert len(requests) == 1
    assert executor.calls == []
    timeouts = [e for e in events if isinstance(e, SystemInfoEvent) and (e.context or {}).get("reason") == "timeout"]
    assert len(timeouts) == 1
    assert timeouts[0].context["choice"] == "no"


def test_unanswered_confirmation_uses_configured_default_yes() -> None:
    session, executor, _, _ = _mk_session(overlay={"hitl": {"timeout_ms": 20, "default_choice": "yes"}})

    out = asyncio.run(asyncio.wait_for(session.run_tool("shell_executor", {"command": "curl https://example.com"}), 5.0))

    assert out.ok
    assert executor.calls == [("shell_executor", {"command": "curl https://example.com"})]
