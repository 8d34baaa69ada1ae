from __future__ import annotations

import json

from agenttail.decoders import CodexDecoder, iter_events


TS = "2026-01-15T12:00:00.000Z"


def item(payload: dict, kind: str = "response_item") -> str:
    return json.dumps({"timestamp": TS, "type": kind, "payload": payload})


def decode_all(record: str):
    return list(iter_events(CodexDecoder(), record))


def test_session_meta() -> None:
    (event,) = decode_all(item({"cwd": "/src/app", "cli_version": "0.63.0"}, kind="session_meta"))

    assert event.kind == "session_meta"
    assert event.text == "Session: /src/app (v0.63.0)"
    assert event.timestamp == TS


def test_message_kind_is_role() -> None:
    record = item({
        "type": "message",
        "role": "user",
        "content": [{"type": "input_text", "text": "add tests"}],
    })

    (event,) = decode_all(record)

    assert event.kind == "user"
    assert event.text == " add tests"


def test_empty_message_is_skipped() -> None:
    record = item({"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "  "}]})

    assert decode_all(record) == []


def test_shell_call_shows_command() -> None:
    record = item({
        "type": "function_call",
        "name": "shell",
        "arguments": json.dumps({"command": ["/bin/zsh", "-lc", "ls -la"]}),
    })

    (event,) = decode_all(record)

    assert event.kind == "function_call"
    assert event.tool_name == "shell"
    assert event.text == "$ ls -la"


def test_function_call_with_unparseable_arguments() -> None:
    (event,) = decode_all(item({"type": "function_call", "name": "apply_patch", "arguments": "{broken"}))

    assert event.text == "[TOOL: apply_patch]"


def test_failed_output_is_prefixed_with_exit_code() -> None:
    record = item({
        "type": "function_call_output",
        "output": json.dumps({"output": "not found", "metadata": {"exit_code": 1}}),
    })

    (event,) = decode_all(record)

    assert event.kind == "output"
    assert event.text == "[exit: 1] not found"


def test_successful_output_and_silent_output() -> None:
    ok = item({"type": "function_call_output", "output": json.dumps({"output": "done", "metadata": {"exit_code": 0}})})
    silent = item({"type": "function_call_output", "output": json.dumps({"output": "", "metadata": {"exit_code": 0}})})
    failed_silent = item({"type": "function_call_output", "output": json.dumps({"metadata": {"exit_code": 2}})})

    assert [e.text for e in decode_all(ok)] == [" done"]
    assert decode_all(silent) == []
    assert [e.text for e in decode_all(failed_silent)] == ["[OUTPUT (exit: 2)]"]


def test_reasoning_uses_summary_text() -> None:
    record = item({"type": "reasoning", "summary": [{"type": "summary_text", "text": "**Planning**"}]})

    (event,) = decode_all(record)

    assert event.kind == "reasoning"
    assert event.text == "**Planning**"


def test_ignored_records() -> None:
    assert decode_all(item({"type": "agent_reasoning", "text": "dup"}, kind="event_msg")) == []
    assert decode_all(item({"type": "ghost_snapshot"})) == []
    assert decode_all(json.dumps({"type": "turn_context"})) == []
