from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from codeagent_runtime.core.contracts import (
    EVENT_TYPES,
    ConfirmationChoice,
    SystemInfoEvent,
    TaskStartedEvent,
    ToolConfirmationRequestEvent,
    ToolConfirmationResponseEvent,
    parse_event,
    parse_event_json,
)


def test_event_types_form_closed_set() -> None:
    assert len(EVENT_TYPES) == 13
    assert len(set(EVENT_TYPES)) == len(EVENT_TYPES)
    assert "tool_confirmation_request" in EVENT_TYPES
    assert "tool_confirmation_response" in EVENT_TYPES


def test_parse_event_selects_variant_by_type() -> None:
    ev = parse_event(
        {
            "type": "tool_confirmation_request",
            "confirmation_id": "conf_1",
            "tool_name": "shell_executor",
            "args": {"command": "ls"},
            "description": "Execute command: ls",
            "options": {"show_remember_option": True, "default_choice": "no", "timeout": 500},
        }
    )

    assert isinstance(ev, ToolConfirmationRequestEvent)
    assert ev.options.default_choice == ConfirmationChoice.NO
    assert ev.options.timeout == 500


def test_parse_event_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_event({"type": "something_else", "message": "x"})


def test_parse_event_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        parse_event({"type": "system_info", "level": "info", "message": "x", "bogus": 1})


def test_response_choice_is_optional() -> None:
    ev = parse_event({"type": "tool_confirmation_response", "confirmation_id": "c", "approved": False})

    assert isinstance(ev, ToolConfirmationResponseEvent)
    assert ev.choice is None


def test_to_json_round_trips_with_sub_events() -> None:
    parent = TaskStartedEvent(description="fix bug", working_directory="/repo")
    parent.sub_events.append(SystemInfoEvent(level="info", message="child"))

    raw = parent.to_json()
    data = json.loads(raw)
    assert data["type"] == "task_started"
    assert data["sub_events"][0]["type"] == "system_info"

    back = parse_event_json(raw)
    assert isinstance(back, TaskStartedEvent)
    assert isinstance(back.sub_events[0], SystemInfoEvent)
    assert back.sub_events[0].message == "child"
