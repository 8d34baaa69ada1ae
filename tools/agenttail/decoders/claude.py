"""
Decoder for Claude Code transcripts (JSONL, one record per line).

Record kinds:
    assistant    Compound. Text and tool_use parts become one event each,
                 in their original order.
    tool result  A record carrying toolUseResult. Summarised on one line;
                 when it reports a finished subagent, the event carries
                 the subagent id.
    user         The user's prompt, flattened and truncated.
    everything else (file-history-snapshot, summary, system, ...) is ignored.
"""

from enum import Enum
from typing import Any, Dict, Optional

from ..core.model import Event
from ..utils.text import (
    content_to_string,
    format_multiline,
    summarize_tool_call,
    truncate_by_lines,
)
from .base import DecodeState, RecordDecoder


# Tool whose call starts a subagent
SUBAGENT_TOOL = "Task"


class ClaudeRecordKind(Enum):
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"
    USER = "user"
    IGNORED = "ignored"


def classify(payload: Any) -> ClaudeRecordKind:
    if not isinstance(payload, dict):
        return ClaudeRecordKind.IGNORED
    kind = payload.get("type")
    if kind == "assistant":
        return ClaudeRecordKind.ASSISTANT
    if payload.get("toolUseResult"):
        return ClaudeRecordKind.TOOL_RESULT
    if kind == "user":
        return ClaudeRecordKind.USER
    return ClaudeRecordKind.IGNORED


def shorten_model(model: str) -> str:
    """
    Turn a model id into a compact display name.

    Example:
        >>> shorten_model("claude-opus-4-5-20251101")
        'opus 4-5'
    """
    return model.replace("claude-", "", 1).replace("-20251101", "").replace("-", " ", 1)


def reported_child(payload: Dict[str, Any]) -> Optional[str]:
    """
    Return the subagent id a tool result reports as finished, if any.

    Slash commands and forked sessions also carry an agentId but are not
    subagents of this session.
    """
    result = payload.get("toolUseResult")
    if not isinstance(result, dict):
        return None
    agent_id = result.get("agentId")
    if not agent_id or not isinstance(agent_id, str):
        return None
    if result.get("commandName") or result.get("status") == "forked":
        return None
    return agent_id


class ClaudeDecoder(RecordDecoder):
    agent = "claude"

    def decode_payload(self, record: str, payload: Any) -> Optional[Event]:
        kind = classify(payload)
        if kind is ClaudeRecordKind.IGNORED:
            return None
        timestamp = payload.get("timestamp") or ""

        if kind is ClaudeRecordKind.ASSISTANT:
            return self._decode_assistant(record, payload)
        if kind is ClaudeRecordKind.TOOL_RESULT:
            return self._decode_tool_result(payload, timestamp)
        return self._decode_user(payload, timestamp)

    def _decode_assistant(self, record: str, payload: Dict[str, Any]) -> Optional[Event]:
        message = payload.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        if not isinstance(content, list):
            return None

        parts = [
            part for part in content
            if isinstance(part, dict) and (
                (part.get("type") == "text" and str(part.get("text") or "").strip())
                or (part.get("type") == "tool_use" and part.get("name"))
            )
        ]
        if not parts:
            return None

        return self.begin(
            record,
            payload,
            parts,
            model=shorten_model(str(message.get("model") or "")),
            text_before=False,
        )

    def next_part(self, state: DecodeState) -> Optional[Event]:
        if state.index >= len(state.parts):
            return None
        part = state.parts[state.index]
        state.index += 1
        timestamp = state.payload.get("timestamp") or ""

        if part.get("type") == "text":
            # Model name only on the first text part of a message
            model = state.flags["model"]
            prefix = f"({model})" if model and not state.flags["text_before"] else ""
            state.flags["text_before"] = True
            preview = truncate_by_lines(part["text"], verbose=self.verbose)
            return Event(
                kind="assistant",
                timestamp=timestamp,
                text=f"{prefix}{format_multiline(preview)}",
                raw=state.payload,
            )

        name = part["name"]
        args = part.get("input") if isinstance(part.get("input"), dict) else None
        return Event(
            kind="function_call",
            timestamp=timestamp,
            text=summarize_tool_call(name, args, verbose=self.verbose),
            raw=part,
            tool_name=name,
            triggers_discovery=name == SUBAGENT_TOOL,
        )

    def _decode_tool_result(self, payload: Dict[str, Any], timestamp: str) -> Optional[Event]:
        result = payload["toolUseResult"]
        if not isinstance(result, dict):
            return None

        fields = []
        if result.get("status"):
            fields.append(str(result["status"]))
        if result.get("agentId"):
            fields.append(f"agent:{result['agentId']}")
        if result.get("totalDurationMs"):
            fields.append(f"{result['totalDurationMs'] / 1000:.1f}s")
        if result.get("totalTokens"):
            fields.append(f"{result['totalTokens']} tokens")
        if result.get("totalToolUseCount"):
            fields.append(f"{result['totalToolUseCount']} tools")
        if not fields:
            return None

        return Event(
            kind="tool_result",
            timestamp=timestamp,
            text=f"({', '.join(fields)})",
            raw=payload,
            reported_child_id=reported_child(payload),
        )

    def _decode_user(self, payload: Dict[str, Any], timestamp: str) -> Optional[Event]:
        message = payload.get("message")
        content = content_to_string(message.get("content") if isinstance(message, dict) else None)
        if not content.strip():
            return None
        preview = truncate_by_lines(content, verbose=self.verbose)
        return Event(
            kind="user",
            timestamp=timestamp,
            text=format_multiline(preview),
            raw=payload,
        )
