"""
Decoder for Gemini CLI session files.

Gemini rewrites one JSON document per session ({"sessionId", "messages":
[...]}) instead of appending lines, so each record is a full snapshot of
the conversation. The decoder remembers which message ids it has already
shown and only walks the new ones.

A "gemini" message yields its tool calls first, then its text. User and
other messages yield one event each; empty ones are skipped.
"""

from enum import Enum
from typing import Any, Dict, Optional, Set

from ..core.model import Event
from ..utils.text import format_multiline, summarize_tool_call, truncate_by_lines
from .base import DecodeState, RecordDecoder


class GeminiRecordKind(Enum):
    SESSION = "session"
    MESSAGE = "message"
    IGNORED = "ignored"


def classify(payload: Any) -> GeminiRecordKind:
    if not isinstance(payload, dict):
        return GeminiRecordKind.IGNORED
    if isinstance(payload.get("messages"), list):
        return GeminiRecordKind.SESSION
    if isinstance(payload.get("content"), str):
        return GeminiRecordKind.MESSAGE
    return GeminiRecordKind.IGNORED


def message_key(message: Dict[str, Any], index: int) -> str:
    """Key used to remember a message; position when it has no id."""
    return str(message.get("id") or f"#{index}")


class GeminiDecoder(RecordDecoder):
    agent = "gemini"

    def __init__(self, verbose: bool = False) -> None:
        super().__init__(verbose=verbose)
        self.processed_ids: Set[str] = set()

    def reset(self) -> None:
        super().reset()
        self.processed_ids.clear()

    def decode_payload(self, record: str, payload: Any) -> Optional[Event]:
        kind = classify(payload)
        if kind is GeminiRecordKind.SESSION:
            return self.begin(record, payload, payload["messages"], in_message=False)
        if kind is GeminiRecordKind.MESSAGE:
            # A lone message object rather than a session document
            content = payload["content"]
            if not content.strip():
                return None
            return Event(
                kind=str(payload.get("type") or "unknown"),
                timestamp=payload.get("timestamp") or "",
                text=format_multiline(truncate_by_lines(content, verbose=self.verbose)),
                raw=payload,
            )
        return None

    def next_part(self, state: DecodeState) -> Optional[Event]:
        while state.index < len(state.parts):
            message = state.parts[state.index]
            if not isinstance(message, dict):
                state.index += 1
                continue

            key = message_key(message, state.index)
            if state.flags["in_message"]:
                event = self._gemini_part(message, state)
                if event is not None:
                    return event
                state.flags["in_message"] = False
                state.index += 1
                continue

            if key in self.processed_ids:
                state.index += 1
                continue
            self.processed_ids.add(key)

            if message.get("type") == "gemini":
                state.flags["in_message"] = True
                state.flags["content_done"] = False
                state.sub_index = 0
                continue

            state.index += 1
            content = message.get("content") or ""
            if not isinstance(content, str) or not content.strip():
                continue
            return Event(
                kind=str(message.get("type") or "unknown"),
                timestamp=message.get("timestamp") or "",
                text=format_multiline(truncate_by_lines(content, verbose=self.verbose)),
                raw=message,
            )
        return None

    def _gemini_part(self, message: Dict[str, Any], state: DecodeState) -> Optional[Event]:
        """Next tool call of a gemini message, then its text."""
        timestamp = message.get("timestamp") or ""
        tool_calls = message.get("toolCalls") or []

        while state.sub_index < len(tool_calls):
            call = tool_calls[state.sub_index]
            state.sub_index += 1
            if not isinstance(call, dict):
                continue
            name = call.get("name") or "unknown"
            args = call.get("args") if isinstance(call.get("args"), dict) else None
            failed = " ❌" if call.get("status") == "error" else ""
            return Event(
                kind="function_call",
                timestamp=timestamp,
                text=summarize_tool_call(name, args, verbose=self.verbose) + failed,
                raw=call,
                tool_name=name,
            )

        if not state.flags["content_done"]:
            state.flags["content_done"] = True
            content = message.get("content") or ""
            if isinstance(content, str) and content.strip():
                return Event(
                    kind="gemini",
                    timestamp=timestamp,
                    text=format_multiline(truncate_by_lines(content, verbose=self.verbose)),
                    raw=message,
                )
        return None
