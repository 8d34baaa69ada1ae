"""
Event formatters.

A formatter turns one Event into one display string. Formatters are
plain text only; colour and layout belong to the display.

    PlainFormatter  [14:03:22] SHELL $ pytest -q
    RawFormatter    {"type": "assistant", "message": {...}}
"""

import json
from datetime import datetime

from ..core.merger import timestamp_key
from ..core.model import Event
from ..utils.text import tool_category


# Label per tool category for function_call events
CATEGORY_LABELS = {
    "shell": "SHELL",
    "file": "FILE",
    "search": "SEARCH",
    "web": "WEB",
    "task": "TASK",
}

# Label per event kind; anything else uses its first four letters
KIND_LABELS = {
    "user": "USER",
    "assistant": "ASST",
    "gemini": "ASST",
    "session_meta": "META",
    "function_call": "FUNC",
    "output": "OUT ",
    "reasoning": "THINK",
}

NO_TIME = "[--:--:--]"


def format_time(timestamp: str) -> str:
    """
    Render an ISO timestamp as local [HH:MM:SS].

    Example:
        >>> format_time("")
        '[--:--:--]'
    """
    seconds = timestamp_key(timestamp)
    if seconds is None:
        return NO_TIME
    return datetime.fromtimestamp(seconds).strftime("[%H:%M:%S]")


def kind_label(event: Event) -> str:
    if event.kind == "function_call" and event.tool_name:
        return CATEGORY_LABELS.get(tool_category(event.tool_name), "FUNC")
    label = KIND_LABELS.get(event.kind)
    if label is None:
        label = event.kind.upper()[:4].ljust(4)
    return label


class PlainFormatter:
    """Render events as "[HH:MM:SS] KIND text"."""

    def format(self, event: Event) -> str:
        return f"{format_time(event.timestamp)} {kind_label(event)} {event.text}"


class RawFormatter:
    """Render the JSON the event was decoded from."""

    def format(self, event: Event) -> str:
        return json.dumps(event.raw, ensure_ascii=False, separators=(",", ":"))


def make_formatter(raw: bool = False):
    return RawFormatter() if raw else PlainFormatter()
