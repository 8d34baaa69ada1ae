from __future__ import annotations

import json

from agenttail.decoders import ClaudeDecoder, iter_events, make_decoder
from agenttail.decoders.claude import ClaudeRecordKind, classify, reported_child, shorten_model


TS = "2026-01-15T12:00:00.000Z"


def line(record: dict) -> str:
    return json.dumps(record)


def assistant_line(*content, model: str = "claude-opus-4-5-20251101") -> str:
    return line({"type": "assistant", "timestamp": TS, "message": {"model": model, "content": list(content)}})


def test_shorten_model() -> None:
    assert shorten_model("claude-opus-4-5-20251101") == "opus 4-5"
    assert shorten_model("") == ""


def test_classify_record_kinds() -> None:
    assert classify({"type": "assistant"}) is ClaudeRecordKind.ASSISTANT
    assert classify({"type": "user", "toolUseResult": {"status": "ok"}}) is ClaudeRecordKind.TOOL_RESULT
    assert classify({"type": "user"}) is ClaudeRecordKind.USER
    assert classify({"type": "file-history-snapshot"}) is ClaudeRecordKind.IGNORED
    assert classify(["not", "a", "dict"]) is ClaudeRecordKind.IGNORED


def test_assistant_parts_decode_in_order() -> None:
    decoder = ClaudeDecoder()
    record = assistant_line(
        {"type": "text", "text": "Let me look."},
        {"type": "tool_use", "name": "Grep", "input": {"pattern": "TODO", "path": "src/"}},
        {"type": "text", "text": "Found it."},
        {"type": "thinking", "thinking": "hidden"},
    )

    events = list(iter_events(decoder, record))

    assert [e.kind for e in events] == ["assistant", "function_call", "assistant"]
    assert events[0].text == "(opus 4-5) Let me look."
    assert events[1].text == '[TOOL: Grep] "TODO" in src/'
    assert events[1].tool_name == "Grep"
    assert events[1].raw == {"type": "tool_use", "name": "Grep", "input": {"pattern": "TODO", "path": "src/"}}
    # Model shown once per message
    assert events[2].text == " Found it."
    assert all(e.timestamp == TS for e in events)


def test_decode_protocol_terminates_and_guards_against_loops() -> None:
    decoder = ClaudeDecoder()
    record = assistant_line({"type": "text", "text": "a"}, {"type": "text", "text": "b"})

    assert decoder.decode(record).text.endswith(" a")
    assert decoder.decode(record).text == " b"
    assert decoder.decode(record) is None
    assert decoder.state is None
    # Same record again after exhaustion: nothing
    assert decoder.decode(record) is None


def test_new_record_supersedes_partial_decode() -> None:
    decoder = ClaudeDecoder()
    first = assistant_line({"type": "text", "text": "a"}, {"type": "text", "text": "b"})
    second = assistant_line({"type": "text", "text": "c"}, model="")

    decoder.decode(first)
    event = decoder.decode(second)

    assert event.text == " c"
    assert decoder.decode(second) is None


def test_task_call_triggers_discovery() -> None:
    record = assistant_line({"type": "tool_use", "name": "Task", "input": {"prompt": "explore the repo"}})

    (event,) = list(iter_events(ClaudeDecoder(), record))

    assert event.triggers_discovery
    assert event.text == "[TOOL: Task] explore the repo"


def test_tool_result_summary_and_reported_child() -> None:
    record = line({
        "type": "user",
        "timestamp": TS,
        "toolUseResult": {
            "status": "completed",
            "agentId": "a0627b6",
            "totalDurationMs": 1500,
            "totalTokens": 2048,
            "totalToolUseCount": 3,
        },
    })

    (event,) = list(iter_events(ClaudeDecoder(), record))

    assert event.kind == "tool_result"
    assert event.text == "(completed, agent:a0627b6, 1.5s, 2048 tokens, 3 tools)"
    assert event.reported_child_id == "a0627b6"


def test_tool_result_without_summary_fields_is_skipped() -> None:
    record = line({"type": "user", "toolUseResult": {"stdout": "ok"}})

    assert list(iter_events(ClaudeDecoder(), record)) == []


def test_slash_commands_and_forks_are_not_children() -> None:
    assert reported_child({"toolUseResult": {"agentId": "a0627b6", "commandName": "review"}}) is None
    assert reported_child({"toolUseResult": {"agentId": "a0627b6", "status": "forked"}}) is None
    assert reported_child({"toolUseResult": "text result"}) is None
    assert reported_child({"toolUseResult": {"agentId": "a0627b6"}}) == "a0627b6"


def test_user_prompt_is_flattened() -> None:
    record = line({
        "type": "user",
        "timestamp": TS,
        "message": {"content": [{"type": "text", "text": "fix"}, {"type": "image"}]},
    })

    (event,) = list(iter_events(ClaudeDecoder(), record))

    assert event.kind == "user"
    assert event.text == " fix [image]"


def test_long_user_prompt_is_truncated_unless_verbose() -> None:
    text = "\n".join(f"line {i}" for i in range(30))
    record = line({"type": "user", "message": {"content": text}})

    (short,) = list(iter_events(ClaudeDecoder(), record))
    (full,) = list(iter_events(make_decoder("claude", verbose=True), record))

    assert "... (10 lines omitted) ..." in short.text
    assert "line 15" in full.text


def test_malformed_and_ignored_records_decode_to_nothing() -> None:
    decoder = ClaudeDecoder()

    assert decoder.decode("{not json") is None
    assert decoder.decode("") is None
    assert decoder.decode(line({"type": "summary", "summary": "x"})) is None
    assert decoder.decode(line({"type": "assistant", "message": {"content": "plain"}})) is None
