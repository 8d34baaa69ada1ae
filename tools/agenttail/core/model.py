"""
Data models shared by the tailing engine, decoders and session registry.

Purpose:
    Lines read from a session file pass through several components before
    they reach the terminal: the tailer, a decoder, the session registry and
    a display. This module defines the small set of structures those
    components hand to each other.

Note:
    None of these types know about colour or layout. Formatting happens
    in agenttail.tui.formatters.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, List, Optional


# Label used for the primary session in every watch mode
MAIN_LABEL = "[MAIN]"
# Session id of the primary session in the registry
MAIN_SESSION_ID = "main"


class TailMode(Enum):
    """
    How a FileTailer splits file content into records.

    LINES emits each newly appended, newline-terminated line.
    DOCUMENT emits the whole file whenever its content changes.
    """
    LINES = "lines"
    DOCUMENT = "document"


@dataclass(frozen=True)
class WatchedSource:
    """
    One file to tail and the label its output is tagged with.

    Attributes:
        path: Filesystem path of the session file.
        label: Display label, e.g. "[MAIN]" or "[a0627b6]".
    """
    path: str
    label: str


def child_label(child_id: str) -> str:
    """Return the display label used for a child session id."""
    return f"[{child_id}]"


@dataclass
class Event:
    """
    One displayable unit decoded from a raw record.

    Attributes:
        kind: Event kind ("user", "assistant", "function_call",
              "tool_result", "session_meta", "output", "reasoning", ...).
        timestamp: ISO 8601 timestamp from the record, or "" if absent.
        text: Human-readable summary produced by the decoder.
        raw: The decoded JSON object (or sub-part) the event came from.
        tool_name: Tool name for function_call events.
        triggers_discovery: True when the event signals that a child
                            session is probably about to start.
        reported_child_id: Child id reported as finished by this event.
        source_label: Label of the source the record was read from.
    """
    kind: str
    timestamp: str
    text: str
    raw: Any = None
    tool_name: Optional[str] = None
    triggers_discovery: bool = False
    reported_child_id: Optional[str] = None
    source_label: Optional[str] = None


@dataclass
class Session:
    """
    One addressable output channel, one per tailed source.

    Attributes:
        id: Registry key ("main" or the child id).
        label: Label the multiplexer tags lines with.
        path: Path of the underlying session file.
        buffer: Output held while the session is not active. Bounded;
                the oldest entries are evicted first.
        done: True once the session is known to have finished.
    """
    id: str
    label: str
    path: str
    buffer: Deque[str] = field(default_factory=deque)
    done: bool = False


@dataclass(frozen=True)
class SessionSummary:
    """Read-only view of one session for status lines."""
    id: str
    label: str
    buffered: int
    done: bool


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Ordered session list plus the active index.

    Attributes:
        sessions: Sessions in display order.
        active_index: Index of the active session, or -1 when empty.
    """
    sessions: List[SessionSummary]
    active_index: int

    @property
    def active(self) -> Optional[SessionSummary]:
        if 0 <= self.active_index < len(self.sessions):
            return self.sessions[self.active_index]
        return None
