"""
Terminal presentation for agenttail.

Modules:
    - formatters: Event -> display string (plain or raw JSON)
    - display: Console and queue-backed display sinks, status line
    - views: Curses viewer for interactive session switching

Architecture:
    The core never prints. Decoded events are formatted here and handed
    to a display, either straight to stdout or through a queue to the
    curses loop running on the main thread.
"""
