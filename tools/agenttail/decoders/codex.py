"""
Decoder for Codex CLI rollout files (JSONL).

Every Codex record is simple: it produces at most one event. Token counts,
turn context, ghost snapshots and the event_msg stream (which repeats the
reasoning already present as response items) are ignored.
"""

import json
from enum import Enum
from typing import Any, Dict, Optional

from ..core.model import Event
from ..utils.text import format_multiline, summarize_tool_call, truncate_by_lines
from .base import RecordDecoder


class CodexRecordKind(Enum):
    SESSION_META = "session_meta"
    MESSAGE = "message"
    FUNCTION_CALL = "function_call"
    FUNCTION_CALL_OUTPUT = "function_call_output"
    REASONING = "reasoning"
    IGNORED = "ignored"


_RESPONSE_ITEM_KINDS = {
    "message": CodexRecordKind.MESSAGE,
    "function_call": CodexRecordKind.FUNCTION_CALL,
    "function_call_output": CodexRecordKind.FUNCTION_CALL_OUTPUT,
    "reasoning": CodexRecordKind.REASONING,
}


def classify(payload: Any) -> CodexRecordKind:
    if not isinstance(payload, dict) or not isinstance(payload.get("payload"), dict):
        return CodexRecordKind.IGNORED
    kind = payload.get("type")
    if kind == "session_meta":
        return CodexRecordKind.SESSION_META
    if kind == "response_item":
        return _RESPONSE_ITEM_KINDS.get(payload["payload"].get("type"), CodexRecordKind.IGNORED)
    return CodexRecordKind.IGNORED


def _parse_json_object(text: Any) -> Dict[str, Any]:
    """Parse a JSON-encoded string field, returning {} if it is not an object."""
    if not isinstance(text, str):
        return {}
    try:
        value = json.loads(text)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


class CodexDecoder(RecordDecoder):
    agent = "codex"

    def decode_payload(self, record: str, payload: Any) -> Optional[Event]:
        kind = classify(payload)
        if kind is CodexRecordKind.IGNORED:
            return None

        item = payload["payload"]
        timestamp = payload.get("timestamp") or ""

        if kind is CodexRecordKind.SESSION_META:
            text = f"Session: {item.get('cwd') or 'unknown'} (v{item.get('cli_version') or '?'})"
            return Event(kind="session_meta", timestamp=timestamp, text=text, raw=payload)

        if kind is CodexRecordKind.MESSAGE:
            return self._message(item, payload, timestamp)

        if kind is CodexRecordKind.FUNCTION_CALL:
            name = item.get("name") or "unknown"
            args = _parse_json_object(item.get("arguments"))
            return Event(
                kind="function_call",
                timestamp=timestamp,
                text=summarize_tool_call(name, args, verbose=self.verbose),
                raw=payload,
                tool_name=name,
            )

        if kind is CodexRecordKind.FUNCTION_CALL_OUTPUT:
            return self._function_output(item, payload, timestamp)

        return self._reasoning(item, payload, timestamp)

    def _message(self, item: Dict[str, Any], payload: Any, timestamp: str) -> Optional[Event]:
        text = ""
        for block in item.get("content") or []:
            if isinstance(block, dict) and block.get("type") in ("input_text", "output_text"):
                text = block.get("text") or ""
                break
        if not text.strip():
            return None
        preview = truncate_by_lines(text, verbose=self.verbose)
        return Event(
            kind=item.get("role") or "message",
            timestamp=timestamp,
            text=format_multiline(preview),
            raw=payload,
        )

    def _function_output(self, item: Dict[str, Any], payload: Any, timestamp: str) -> Optional[Event]:
        output = _parse_json_object(item.get("output"))
        metadata = output.get("metadata") if isinstance(output.get("metadata"), dict) else {}
        exit_code = metadata.get("exit_code")
        content = output.get("output") or ""
        failed = exit_code is not None and exit_code != 0

        # Nothing printed and nothing failed
        if not content and not failed:
            return None
        if not content:
            text = f"[OUTPUT (exit: {exit_code})]"
        else:
            preview = truncate_by_lines(str(content), verbose=self.verbose)
            prefix = f"[exit: {exit_code}]" if failed else ""
            text = f"{prefix}{format_multiline(preview)}"
        return Event(kind="output", timestamp=timestamp, text=text, raw=payload)

    def _reasoning(self, item: Dict[str, Any], payload: Any, timestamp: str) -> Optional[Event]:
        text = ""
        for block in item.get("summary") or []:
            if isinstance(block, dict) and block.get("type") == "summary_text":
                text = block.get("text") or ""
                break
        if not text:
            return None
        return Event(
            kind="reasoning",
            timestamp=timestamp,
            text=truncate_by_lines(text, verbose=self.verbose),
            raw=payload,
        )
