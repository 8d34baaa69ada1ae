#!/usr/bin/env python3
"""
agenttail - Tail AI agent session logs in real time.

This module implements the command-line interface: it locates a session
transcript, picks a watch mode and wires the tailing engine, decoders,
formatters and displays together.

Watch Modes:
    - Single: one file (Codex rollout, Gemini chat, Claude subagent)
    - Multi: a Claude main session plus, optionally, its subagents,
      all printed to stdout
    - Interactive: the same sources in a curses viewer, one session at a
      time, switched with Tab / Shift-Tab / n / p

Usage:
    python -m agenttail <claude|codex|gemini> [session-id] [options]

Examples:
    agenttail codex
    agenttail claude -p myproject --with-subagents
    agenttail claude -i --auto-switch
    agenttail claude --subagent a0627b6
    agenttail gemini --no-follow -n 20
"""

import argparse
import datetime
import os
import sys
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .config import (
    MAX_POLL_INTERVAL_MS,
    MIN_POLL_INTERVAL_MS,
    Settings,
    load_dotenv,
    load_settings,
)
from .core.discovery import ChildSourceDiscovery, extract_child_ids
from .core.errors import AgentTailError, UsageError
from .core.follow import FollowLatestController
from .core.model import MAIN_LABEL, MAIN_SESSION_ID, TailMode, WatchedSource
from .core.multiplexer import SourceMultiplexer
from .core.notify import Notifier
from .core.pipeline import StartupOrdering, existing_child_sources, make_line_handler
from .core.sessions import SessionRegistry
from .core.tailer import FileTailer
from .tui.display import ConsoleDisplay, QueueDisplay
from .tui.formatters import make_formatter
from .utils import paths
from .utils.index_cache import SessionIndexCache
from .utils.paths import SessionFile, claude_children_dir
from .utils.runlog import RunLogger


AGENTS = ("claude", "codex", "gemini")


# ============================================================
# Command-Line Argument Parsing
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Boolean options accept a --no- form. Options that --all can switch on
    default to None so an explicit --no-... wins over the preset.
    """
    parser = argparse.ArgumentParser(
        prog="agenttail",
        description="Tail agent session logs (Codex, Claude Code & Gemini CLI) in real-time",
    )
    parser.add_argument("agent", help="Agent type: codex, claude, or gemini")
    parser.add_argument(
        "session_id",
        nargs="?",
        help="Optional session ID to load (partial match supported)",
    )
    parser.add_argument("--raw", action="store_true",
                        help="Output raw JSON instead of formatted output")
    parser.add_argument("-p", "--project",
                        help="Filter by project name (fuzzy match)")
    parser.add_argument("-f", "--follow", action=argparse.BooleanOptionalAction, default=True,
                        help="Follow file changes (default: on)")
    parser.add_argument("-v", "--verbose", action=argparse.BooleanOptionalAction, default=None,
                        help="Show full content without truncation")
    parser.add_argument("-q", "--quiet", action=argparse.BooleanOptionalAction, default=False,
                        help="Suppress non-error output messages")
    parser.add_argument(
        "--subagent",
        nargs="?",
        const=True,
        default=None,
        metavar="ID",
        help="Claude only: tail a subagent log (latest if no ID)",
    )
    parser.add_argument("-s", "--sleep-interval", type=int, metavar="MS",
                        help="File polling interval in milliseconds (default: 500)")
    parser.add_argument("-n", "--lines", type=int,
                        help="Number of initial lines to show per file (default: all)")
    parser.add_argument("-i", "--interactive", action=argparse.BooleanOptionalAction, default=None,
                        help="Claude only: switch between sessions with Tab")
    parser.add_argument("--with-subagents", action=argparse.BooleanOptionalAction, default=None,
                        help="Claude only: include subagent content in output")
    parser.add_argument("--auto-switch", action=argparse.BooleanOptionalAction, default=None,
                        help="Claude only: follow the latest main session in the project")
    parser.add_argument("-a", "--all", action="store_true",
                        help="Claude only: verbose + with-subagents + auto-switch")
    return parser


def resolve_options(args: argparse.Namespace) -> argparse.Namespace:
    """
    Expand presets and check option combinations.

    Raises:
        UsageError: The options cannot be used together.
    """
    if args.agent not in AGENTS:
        raise UsageError(f'Invalid agent type "{args.agent}". Use "codex", "claude", or "gemini".')
    claude = args.agent == "claude"

    if args.subagent is not None and not claude:
        raise UsageError('--subagent option is only available for "claude" agent type.')
    if args.all and not claude:
        raise UsageError('--all option is only available for "claude" agent type.')

    # --all only fills in options the user did not set either way
    if args.all:
        for name in ("verbose", "with_subagents", "auto_switch"):
            if getattr(args, name) is None:
                setattr(args, name, True)
    for name in ("verbose", "interactive", "with_subagents", "auto_switch"):
        if getattr(args, name) is None:
            setattr(args, name, False)

    if args.interactive and not claude:
        raise UsageError('--interactive option is only available for "claude" agent type.')
    if args.interactive and args.subagent is not None:
        raise UsageError("--interactive and --subagent options cannot be used together.")
    if args.interactive and not args.follow:
        raise UsageError("--interactive requires --follow mode (cannot use with --no-follow).")
    if args.with_subagents and not claude:
        raise UsageError('--with-subagents option is only available for "claude" agent type.')
    if args.auto_switch and not claude:
        raise UsageError('--auto-switch option is only available for "claude" agent type.')

    if args.sleep_interval is not None and not (
        MIN_POLL_INTERVAL_MS <= args.sleep_interval <= MAX_POLL_INTERVAL_MS
    ):
        raise UsageError(
            f"--sleep-interval must be between {MIN_POLL_INTERVAL_MS} and "
            f"{MAX_POLL_INTERVAL_MS} milliseconds."
        )
    return args


def parse_args(argv=None) -> argparse.Namespace:
    """Parse and resolve arguments. Raises UsageError on invalid combinations."""
    return resolve_options(build_parser().parse_args(argv))


# ============================================================
# Session lookup
# ============================================================

def find_session(args: argparse.Namespace, settings: Settings, notifier: Notifier) -> Optional[SessionFile]:
    """Locate the transcript to tail for the parsed options."""
    if args.agent == "claude":
        if args.subagent is not None:
            child_id = args.subagent if isinstance(args.subagent, str) else None
            return paths.find_claude_child(settings.claude_root, args.project, child_id)
        return paths.find_claude_session(settings.claude_root, args.project, args.session_id)

    if args.agent == "codex":
        # The index maps working directories to rollouts; only needed to filter
        index = SessionIndexCache(settings.codex_root, notifier=notifier) if args.project else None
        return paths.find_codex_session(settings.codex_root, args.project, args.session_id, index=index)

    return paths.find_gemini_session(settings.gemini_root, args.project, args.session_id)


def not_found_message(args: argparse.Namespace) -> str:
    project = f' in project "{args.project}"' if args.project else ""
    if args.subagent is not None:
        child = f" (id: {args.subagent})" if isinstance(args.subagent, str) else ""
        return f"No subagent file found{child}{project}"
    session = f" (id: {args.session_id})" if args.session_id else ""
    return f"No session file found for {args.agent}{session}{project}"


# ============================================================
# Claude main session + subagents
# ============================================================

class ClaudeWatch:
    """
    Tail a Claude main session together with its subagent sessions.

    Output goes to emit(label, text). With a registry, children are also
    registered as sessions so the interactive viewer can switch to them.

    Attributes:
        session_path: Main session currently tailed ("" before start).
        include_children: Tail subagent files at all.
    """

    def __init__(
        self,
        formatter,
        emit: Callable[[str, str], None],
        notifier: Notifier,
        tail_options: Dict[str, Any],
        verbose: bool = False,
        include_children: bool = True,
        registry: Optional[SessionRegistry] = None,
        on_update: Optional[Callable[[], None]] = None,
    ) -> None:
        self.formatter = formatter
        self.emit = emit
        self.notifier = notifier
        self.tail_options = dict(tail_options)
        self.verbose = verbose
        self.include_children = include_children
        self.registry = registry
        self.on_update = on_update

        self.session_path = ""
        self.multiplexer: Optional[SourceMultiplexer] = None
        self.discovery: Optional[ChildSourceDiscovery] = None
        # Auto-switch restarts from a timer thread while main may be stopping
        self._lock = threading.RLock()

    @property
    def current_path(self) -> str:
        return self.session_path

    def start(self, session_path: str) -> None:
        """
        Start tailing a main session and its known children.

        Raises:
            SourceUnavailableError: The main session cannot be opened.
        """
        with self._lock:
            session_path = os.path.abspath(session_path)
            children_dir = str(claude_children_dir(Path(session_path)))
            follow = self.tail_options.get("follow", True)

            existing = existing_child_sources(session_path, children_dir) if self.include_children else []

            if self.registry is not None:
                self.registry.reset()
                self.registry.add_session(MAIN_SESSION_ID, MAIN_LABEL, session_path)
                for child_id, source in existing:
                    self.registry.add_session(child_id, source.label, source.path)

            multiplexer = SourceMultiplexer(self.notifier)
            discovery = ChildSourceDiscovery(
                known_ids=extract_child_ids(session_path),
                directory=children_dir,
                multiplexer=multiplexer,
                sessions=self.registry,
                notifier=self.notifier,
                enabled=self.include_children and follow,
                on_update=self.on_update,
            )
            # Interleave history of several files by time; the viewer shows one at a time
            ordering = None
            if existing and self.registry is None:
                ordering = StartupOrdering(self.formatter, self.emit)

            handler = make_line_handler(
                "claude",
                self.formatter,
                self.emit,
                discovery=discovery,
                verbose=self.verbose,
                ordering=ordering,
            )

            if existing:
                self.notifier.info(f"Found {len(existing)} subagent(s)")

            self.session_path = session_path
            self.multiplexer = multiplexer
            self.discovery = discovery

            sources = [WatchedSource(session_path, MAIN_LABEL)]
            sources.extend(source for _child_id, source in existing)
            try:
                multiplexer.start(sources, handler, **self.tail_options)
            finally:
                if ordering is not None:
                    ordering.release()

            if follow:
                discovery.start_watch()

    def stop(self) -> None:
        with self._lock:
            discovery, self.discovery = self.discovery, None
            multiplexer, self.multiplexer = self.multiplexer, None
        if discovery is not None:
            discovery.stop()
        if multiplexer is not None:
            multiplexer.stop()

    def restart(self, session: SessionFile) -> None:
        """Switch to another main session (auto-switch callback)."""
        with self._lock:
            self.stop()
            self.notifier.info(f"--- Switched to session {session.path.name} ---")
            try:
                self.start(str(session.path))
            except AgentTailError as exc:
                self.notifier.error(f"Could not switch to {session.path}: {exc}")


# ============================================================
# Watch modes
# ============================================================

def wait_for_interrupt() -> None:
    """Block the main thread until Ctrl+C; tail threads do the work."""
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass


def tail_options_for(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    interval_ms = args.sleep_interval if args.sleep_interval is not None else settings.poll_interval_ms
    return {
        "follow": args.follow,
        "poll_interval": interval_ms / 1000.0,
        "initial_lines": args.lines,
    }


def run_single_watch(args, session: SessionFile, formatter, display: ConsoleDisplay, notifier: Notifier, tail_options) -> int:
    """Tail one file: Codex rollout, Gemini chat or Claude subagent."""
    mode = TailMode.DOCUMENT if args.agent == "gemini" else TailMode.LINES
    handler = make_line_handler(
        args.agent,
        formatter,
        lambda _label, text: display.write(text),
        verbose=args.verbose,
    )

    notifier.info("---")
    tailer = FileTailer(notifier)
    try:
        tailer.start(
            str(session.path),
            on_line=lambda record: handler(MAIN_LABEL, record),
            mode=mode,
            **tail_options,
        )
        if not args.follow:
            return 0
        notifier.info("Watching for changes... (Ctrl+C to stop)")
        wait_for_interrupt()
        notifier.info("\nStopping...")
        return 0
    finally:
        tailer.stop()


def start_follow_latest(args, watch: ClaudeWatch, session: SessionFile, notifier: Notifier) -> Optional[FollowLatestController]:
    if not (args.auto_switch and args.follow):
        return None
    controller = FollowLatestController(
        project_dir=session.path.parent,
        get_current_path=lambda: watch.current_path,
        on_switch=watch.restart,
        notifier=notifier,
    )
    controller.start()
    return controller


def run_multi_watch(args, session: SessionFile, formatter, display: ConsoleDisplay, notifier: Notifier, tail_options) -> int:
    """Tail a Claude main session (and subagents) to stdout."""

    def emit(label: str, text: str) -> None:
        display.write(text if label == MAIN_LABEL else f"{label} {text}")

    watch = ClaudeWatch(
        formatter,
        emit,
        notifier,
        tail_options,
        verbose=args.verbose,
        include_children=args.with_subagents,
    )
    controller = None
    try:
        watch.start(str(session.path))
        notifier.info("---")
        if not args.follow:
            return 0
        controller = start_follow_latest(args, watch, session, notifier)
        notifier.info("Watching for changes... (Ctrl+C to stop)")
        wait_for_interrupt()
        notifier.info("\nStopping...")
        return 0
    finally:
        if controller is not None:
            controller.stop()
        watch.stop()


def run_interactive_watch(args, session: SessionFile, formatter, settings: Settings, logger, tail_options) -> int:
    """Tail a Claude main session and its subagents in the curses viewer."""
    import curses

    from .tui.views import run_session_viewer

    display = QueueDisplay()
    # Anything printed while curses owns the terminal must go through the queue
    notifier = Notifier(
        write=display.write,
        logger=logger,
        source="agenttail",
        verbose=args.verbose,
        quiet=args.quiet,
    )
    registry = SessionRegistry(
        on_output=lambda content, _session: display.write(content),
        on_added=lambda added: display.write(f"New session added: {added.label}"),
        on_switched=lambda target, history, _sessions: display.show_switch(target, history),
        buffer_size=settings.buffer_size,
    )
    watch = ClaudeWatch(
        formatter,
        registry.handle_output,
        notifier,
        tail_options,
        verbose=args.verbose,
        include_children=True,
        registry=registry,
        on_update=lambda: display.update_status(registry.snapshot()),
    )

    controller = None
    try:
        watch.start(str(session.path))
        controller = start_follow_latest(args, watch, session, notifier)
        curses.wrapper(run_session_viewer, registry, display, session.path.name)
    except KeyboardInterrupt:
        pass
    finally:
        if controller is not None:
            controller.stop()
        watch.stop()
    print("Stopping...")
    return 0


def run(args: argparse.Namespace, settings: Settings, logger: Optional[RunLogger]) -> int:
    """
    Locate the session and run the selected watch mode.

    Returns:
        int: Process exit status.

    Raises:
        AgentTailError: Fatal errors (e.g. the session file vanished).
    """
    display = ConsoleDisplay()
    notifier = Notifier(
        write=display.write,
        logger=logger,
        source="agenttail",
        verbose=args.verbose,
        quiet=args.quiet,
    )
    formatter = make_formatter(args.raw)

    target = "subagent" if args.subagent is not None else "session"
    notifier.info(f"Searching for latest {args.agent} {target}...")
    session = find_session(args, settings, notifier)
    if session is None:
        message = not_found_message(args)
        if logger is not None:
            logger.error("agenttail", message)
        print(message, file=sys.stderr)
        return 1

    notifier.info(f"Found: {session.path}")
    modified = datetime.datetime.fromtimestamp(session.mtime)
    notifier.info(f"Modified: {modified:%Y-%m-%d %H:%M:%S}")

    tail_options = tail_options_for(args, settings)

    if args.agent == "claude" and args.subagent is None:
        if args.interactive:
            if sys.stdin.isatty() and sys.stdout.isatty():
                return run_interactive_watch(args, session, formatter, settings, logger, tail_options)
            notifier.warn(
                "Warning: Interactive mode not available in non-TTY environment.\n"
                "Switching to standard multi-watch mode.\n"
                "Keyboard controls (Tab to switch) will not be available."
            )
        return run_multi_watch(args, session, formatter, display, notifier, tail_options)

    return run_single_watch(args, session, formatter, display, notifier, tail_options)


def open_run_logger(settings: Settings) -> Optional[RunLogger]:
    """Create this run's logger; a read-only log root only disables logging."""
    try:
        return RunLogger(uuid.uuid4().hex[:8], settings.log_root)
    except OSError:
        return None


# ============================================================
# Entry Point
# ============================================================

def main(argv=None) -> None:
    """
    Main entry point for the agenttail CLI.

    Exit Codes:
        0: Success
        1: Invalid options, no session found, or a fatal error
    """
    # Load any .env configuration before reading settings
    load_dotenv()

    try:
        args = parse_args(argv)
        settings = load_settings()
    except AgentTailError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = open_run_logger(settings)
    try:
        code = run(args, settings, logger)
    except AgentTailError as exc:
        if logger is not None:
            logger.error("agenttail", f"Fatal error: {exc}")
        print(f"Fatal error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
