"""
Curses-based interactive session viewer.

Shows one session at a time, with a status line listing every session.
Tab / n switch to the next session, Shift-Tab / p to the previous one,
c forgets the current session's replayed history, q quits.

Architecture:
    - Tail threads: route output through the SessionRegistry, which sends
      the active session's lines to a QueueDisplay
    - Main thread: drains the queue, handles keys and renders via curses
    - Communication: the QueueDisplay's thread-safe queue
"""

import curses
import time
from collections import deque

from ..core.sessions import SessionRegistry
from .display import QueueDisplay, build_status_line


# Lines kept on screen; older lines scroll away
VISIBLE_LINES = 500
# Frame interval in seconds (~20 FPS)
FRAME_DELAY = 0.05

NEXT_KEYS = (ord("\t"), ord("n"), ord("N"))
PREV_KEYS = (curses.KEY_BTAB, ord("p"), ord("P"))
CLEAR_KEYS = (ord("c"), ord("C"))
# 'q', 'Q' and Ctrl+C
QUIT_KEYS = (ord("q"), ord("Q"), 3)


def handle_key(ch: int, registry: SessionRegistry) -> bool:
    """
    Apply one key press. Returns False when the viewer should exit.
    """
    if ch in QUIT_KEYS:
        return False
    if ch in NEXT_KEYS:
        registry.switch_next()
    elif ch in PREV_KEYS:
        registry.switch_prev()
    elif ch in CLEAR_KEYS:
        active = registry.get_active()
        if active is not None:
            # The next switch back to it starts from here
            registry.clear_buffer(active.id)
    return True


def run_session_viewer(stdscr, registry: SessionRegistry, display: QueueDisplay, title: str) -> None:
    """
    Run the interactive viewer until the user quits.

    Args:
        stdscr: The curses standard screen object (provided by curses.wrapper).
        registry: Sessions to show and switch between.
        display: Queue the registry's callbacks write to.
        title: Shown in the header (usually the session file name).

    Note:
        This function should be called via curses.wrapper() to ensure
        proper terminal setup and cleanup.
    """
    curses.curs_set(0)
    # Non-blocking getch() so output keeps flowing between key presses
    stdscr.nodelay(True)
    stdscr.keypad(True)

    visible_lines = deque(maxlen=VISIBLE_LINES)
    running = True

    while running:
        ch = stdscr.getch()
        while ch != -1 and running:
            running = handle_key(ch, registry)
            ch = stdscr.getch()
        if not running:
            break

        for kind, payload in display.drain():
            if kind == "line":
                visible_lines.extend(str(payload).split("\n"))
            elif kind == "switch":
                # New session: start from its replayed history
                visible_lines.clear()
                visible_lines.extend(payload)

        # --- Render the screen ---
        stdscr.erase()
        h, w = stdscr.getmaxyx()
        if h < 4 or w < 10:
            stdscr.refresh()
            time.sleep(FRAME_DELAY)
            continue

        stdscr.addnstr(0, 0, f"agenttail: {title}", w - 1)
        stdscr.addnstr(1, 0, "-" * (w - 1), w - 1)

        # Leave room for header (2 lines) and status line (1 line)
        body = h - 3
        lines = list(visible_lines)[-body:]
        for idx, line in enumerate(lines, start=2):
            stdscr.addnstr(idx, 0, line, w - 1)

        stdscr.addnstr(h - 1, 0, build_status_line(registry.snapshot()), w - 1)
        stdscr.refresh()

        time.sleep(FRAME_DELAY)
