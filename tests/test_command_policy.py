from __future__ import annotations

import pytest

from codeagent_runtime.config.loader import ShellSecurityConfig
from codeagent_runtime.safety.allowlist import InMemoryAllowlistStore
from codeagent_runtime.safety.policy import CommandSecurityPolicy, extract_command_name


@pytest.mark.parametrize(
    "line,expected",
    [
        ("git status", "git"),
        ("/usr/bin/git log", "git"),
        ("C:\\Tools\\NPM.CMD install", "npm"),
        ("  Python.exe -m pytest", "python"),
        ("run.bat", "run"),
        ("", None),
        ("   ", None),
    ],
)
def test_extract_command_name(line: str, expected: str | None) -> None:
    assert extract_command_name(line) == expected


def test_extract_command_name_rejects_non_strings() -> None:
    assert extract_command_name(None) is None  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "line,is_write",
    [
        ("ls -la", False),
        ("cat README.md", False),
        ("mkdir build", True),
        ("git commit -m x", True),
        ("cat a > b", True),
        ("grep x file | sort", True),
        ("sleep 1 &", True),
    ],
)
def test_is_write_operation(line: str, is_write: bool) -> None:
    assert CommandSecurityPolicy().is_write_operation(line) is is_write


def test_classify_command_categories() -> None:
    policy = CommandSecurityPolicy()

    assert policy.classify_command("ls").category == "read"
    assert policy.classify_command("rm -rf x").category == "system"
    assert policy.classify_command("touch a").category == "write"
    assert policy.classify_command("curl https://example.com").category == "execute"
    assert policy.classify_command("ls").requires_confirmation is False


def test_always_allowed_read_commands() -> None:
    result = CommandSecurityPolicy().validate_command("cat setup.cfg")

    assert result.allowed is True
    assert result.requires_confirmation is False
    assert result.operation_type == "read"


def test_blocklist_wins_over_allowlist() -> None:
    policy = CommandSecurityPolicy(ShellSecurityConfig(allowlist=["curl"], blocklist=["CURL"]))

    result = policy.validate_command("curl x")

    assert result.allowed is False
    assert result.requires_confirmation is False
    assert result.reason == "Command 'curl' is blocked"


def test_dangerous_commands_are_rejected_with_suggestion() -> None:
    result = CommandSecurityPolicy().validate_command("rm -rf /tmp/x")

    assert result.allowed is False
    assert result.requires_confirmation is False
    assert result.suggestion is not None


def test_dangerous_commands_allowed_when_enabled() -> None:
    policy = CommandSecurityPolicy(ShellSecurityConfig(allow_dangerous_commands=True, allowlist=["rm"]))

    result = policy.validate_command("rm file")

    assert result.allowed is True
    assert result.requires_confirmation is False


def test_unlisted_commands_require_confirmation() -> None:
    result = CommandSecurityPolicy().validate_command("curl https://example.com")

    assert result.allowed is True
    assert result.requires_confirmation is True


def test_unlisted_commands_not_allowed_when_disabled() -> None:
    policy = CommandSecurityPolicy(ShellSecurityConfig(allow_unlisted_commands=False))

    result = policy.validate_command("curl https://example.com")

    assert result.allowed is False
    assert result.requires_confirmation is True


def test_allowlist_is_read_live_from_store() -> None:
    store = InMemoryAllowlistStore()
    policy = CommandSecurityPolicy(allowlist_store=store)
    assert policy.validate_command("make test").requires_confirmation is True

    store.append_allowlist("make")

    result = policy.validate_command("make test")
    assert result.allowed is True
    assert result.requires_confirmation is False


@pytest.mark.parametrize("line,reason", [("", "Empty command"), ("   ", "Empty command")])
def test_empty_commands_are_rejected(line: str, reason: str) -> None:
    result = CommandSecurityPolicy().validate_command(line)

    assert result.allowed is False
    assert result.reason == reason
