"""
Display sinks for formatted output.

A display receives three things: formatted lines, status updates (a
SessionSnapshot) and switch notices (the newly active session plus the
lines it buffered while inactive).

    ConsoleDisplay  prints to a stream; used by single and multi watch
    QueueDisplay    hands everything to the curses viewer through a queue

Both are called from tail threads and must be thread-safe.
"""

import sys
import threading
from queue import Empty, Queue
from typing import List, Optional, TextIO, Tuple

from ..core.model import MAIN_SESSION_ID, Session, SessionSnapshot


# Sessions shown around the active one in the status line
STATUS_WINDOW = 5
# Buffered lines replayed when switching to a session
DEFAULT_HISTORY_LINES = 50


def build_status_line(snapshot: SessionSnapshot, window: int = STATUS_WINDOW) -> str:
    """
    Render the session list as one line.

    Shows a window of sessions around the active one, with counts of
    sessions hidden on either side.

    Example:
        --- [1/3] [MAIN] | a0627b6(4) | b9d1e4f✓ (Tab/q) ---
    """
    sessions = snapshot.sessions
    total = len(sessions)
    active = snapshot.active_index

    half = window // 2
    start = max(0, active - half)
    end = min(total, start + window)
    if end == total and total > window:
        start = max(0, total - window)
    if start == 0 and total > window:
        end = min(total, window)

    parts = []
    for index in range(start, end):
        session = sessions[index]
        name = "MAIN" if session.id == MAIN_SESSION_ID else session.label.strip("[]")
        done = "✓" if session.done else ""
        if index == active:
            parts.append(f"[{name}]{done}")
        else:
            buffered = f"({session.buffered})" if session.buffered else ""
            parts.append(f"{name}{buffered}{done}")

    text = " | ".join(parts)
    if start > 0:
        text = f"←{start} | {text}"
    if total - end > 0:
        text = f"{text} | {total - end}→"
    return f"--- [{active + 1}/{total}] {text} (Tab/q) ---"


def switch_message_lines(
    session: Session,
    history: List[str],
    history_lines: int = DEFAULT_HISTORY_LINES,
) -> List[str]:
    """Lines shown when a session becomes active."""
    done = " ✓ (completed)" if session.done else ""
    lines = ["", f"--- Switched to {session.label}{done} ---"]

    shown = history[-history_lines:] if history_lines > 0 else []
    if shown:
        lines.append(f"[Showing {len(shown)} buffered lines]")
        lines.extend(shown)
        lines.append("[End of buffer]")
    elif session.done:
        lines.append("[No new content - session completed]")
    else:
        lines.append("[No buffered content - waiting for new output...]")
    return lines


class ConsoleDisplay:
    """
    Print output to a text stream.

    Attributes:
        stream: Where lines go (stdout by default).
        history_lines: Buffered lines replayed on a switch.
    """

    def __init__(self, stream: Optional[TextIO] = None, history_lines: int = DEFAULT_HISTORY_LINES) -> None:
        self.stream = stream or sys.stdout
        self.history_lines = history_lines
        self._lock = threading.Lock()

    def write(self, text: str) -> None:
        with self._lock:
            self.stream.write(text + "\n")
            self.stream.flush()

    def update_status(self, snapshot: SessionSnapshot) -> None:
        self.write(build_status_line(snapshot))

    def show_switch(self, session: Session, history: List[str]) -> None:
        for line in switch_message_lines(session, history, self.history_lines):
            self.write(line)


class QueueDisplay:
    """
    Forward output to a consumer thread.

    Items are (kind, payload) tuples:
        ("line", str), ("status", SessionSnapshot), ("switch", List[str])
    """

    def __init__(self, queue: Optional[Queue] = None, history_lines: int = DEFAULT_HISTORY_LINES) -> None:
        self.queue: Queue = queue if queue is not None else Queue()
        self.history_lines = history_lines

    def write(self, text: str) -> None:
        self.queue.put(("line", text))

    def update_status(self, snapshot: SessionSnapshot) -> None:
        self.queue.put(("status", snapshot))

    def show_switch(self, session: Session, history: List[str]) -> None:
        self.queue.put(("switch", switch_message_lines(session, history, self.history_lines)))

    def drain(self) -> List[Tuple[str, object]]:
        """Return every queued item without blocking."""
        items = []
        try:
            while True:
                items.append(self.queue.get_nowait())
        except Empty:
            pass
        return items
