from __future__ import annotations

from typing import List

from codeagent_runtime.core.contracts import SystemInfoEvent
from codeagent_runtime.events.bus import EventBus
from codeagent_runtime.safety.modes import ExecutionMode, ExecutionModeManager


def test_set_mode_emits_only_on_change() -> None:
    bus = EventBus()
    infos: List[SystemInfoEvent] = []
    bus.subscribe("system_info", infos.append)  # type: ignore[arg-type]
    manager = ExecutionModeManager(bus)

    manager.set_mode(ExecutionMode.CODE)
    manager.set_mode(ExecutionMode.PLAN)
    manager.set_mode(ExecutionMode.PLAN)

    assert manager.get_current_mode() == ExecutionMode.PLAN
    assert len(infos) == 1
    assert infos[0].context == {"old_mode": "code", "new_mode": "plan"}


def test_set_mode_accepts_plain_strings() -> None:
    manager = ExecutionModeManager()

    manager.set_mode("plan")  # type: ignore[arg-type]

    assert manager.get_current_mode() == ExecutionMode.PLAN


def test_cycle_mode_alternates() -> None:
    manager = ExecutionModeManager()

    assert manager.cycle_mode() == ExecutionMode.PLAN
    assert manager.cycle_mode() == ExecutionMode.CODE


def test_status_and_info() -> None:
    manager = ExecutionModeManager(initial=ExecutionMode.PLAN)

    assert manager.get_mode_info().display_name == "Plan Mode"
    assert manager.get_mode_info(ExecutionMode.CODE).display_name == "Code Mode"
    assert manager.get_status_message().endswith("Plan Mode")


def test_reset_restores_initial_mode_silently() -> None:
    bus = EventBus()
    infos: List[SystemInfoEvent] = []
    manager = ExecutionModeManager(bus)
    manager.set_mode(ExecutionMode.PLAN)
    bus.subscribe("system_info", infos.append)  # type: ignore[arg-type]

    manager.reset()

    assert manager.get_current_mode() == ExecutionMode.CODE
    assert infos == []
