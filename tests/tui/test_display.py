from __future__ import annotations

import io

from agenttail.core.model import Session, SessionSnapshot, SessionSummary
from agenttail.tui.display import (
    ConsoleDisplay,
    QueueDisplay,
    build_status_line,
    switch_message_lines,
)


def summary(id: str, buffered: int = 0, done: bool = False) -> SessionSummary:
    label = "[MAIN]" if id == "main" else f"[{id}]"
    return SessionSummary(id=id, label=label, buffered=buffered, done=done)


def test_status_line_marks_active_buffered_and_done() -> None:
    snapshot = SessionSnapshot(
        sessions=[summary("main"), summary("a0627b6", buffered=4), summary("b9d1e4f", done=True)],
        active_index=0,
    )

    assert build_status_line(snapshot) == "--- [1/3] [MAIN] | a0627b6(4) | b9d1e4f✓ (Tab/q) ---"


def test_status_line_windows_long_session_lists() -> None:
    sessions = [summary("main")] + [summary(f"{i:07d}") for i in range(1, 9)]

    middle = build_status_line(SessionSnapshot(sessions=sessions, active_index=4))
    start = build_status_line(SessionSnapshot(sessions=sessions, active_index=0))
    end = build_status_line(SessionSnapshot(sessions=sessions, active_index=8))

    assert middle == "--- [5/9] ←2 | 0000002 | 0000003 | [0000004] | 0000005 | 0000006 | 2→ (Tab/q) ---"
    assert start.startswith("--- [1/9] [MAIN] | 0000001")
    assert start.endswith(" | 4→ (Tab/q) ---")
    assert end.startswith("--- [9/9] ←4 | ")
    assert "[0000008]" in end


def test_switch_message_with_history() -> None:
    session = Session(id="a0627b6", label="[a0627b6]", path="/p/a.jsonl", done=True)

    lines = switch_message_lines(session, ["l1", "l2", "l3"], history_lines=2)

    assert lines == [
        "",
        "--- Switched to [a0627b6] ✓ (completed) ---",
        "[Showing 2 buffered lines]",
        "l2",
        "l3",
        "[End of buffer]",
    ]


def test_switch_message_without_history() -> None:
    running = Session(id="x", label="[1111111]", path="/p")
    finished = Session(id="y", label="[2222222]", path="/p", done=True)

    assert switch_message_lines(running, [])[-1] == "[No buffered content - waiting for new output...]"
    assert switch_message_lines(finished, [])[-1] == "[No new content - session completed]"


def test_console_display_writes_lines() -> None:
    stream = io.StringIO()
    display = ConsoleDisplay(stream=stream)

    display.write("hello")
    display.show_switch(Session(id="main", label="[MAIN]", path="/p"), ["old"])

    assert stream.getvalue().splitlines() == [
        "hello",
        "",
        "--- Switched to [MAIN] ---",
        "[Showing 1 buffered lines]",
        "old",
        "[End of buffer]",
    ]


def test_queue_display_drains_in_order() -> None:
    display = QueueDisplay()
    snapshot = SessionSnapshot(sessions=[summary("main")], active_index=0)

    display.write("line")
    display.update_status(snapshot)
    display.show_switch(Session(id="main", label="[MAIN]", path="/p"), [])

    items = display.drain()
    assert [kind for kind, _ in items] == ["line", "status", "switch"]
    assert items[1][1] is snapshot
    assert display.drain() == []
