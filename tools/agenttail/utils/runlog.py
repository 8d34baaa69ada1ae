"""
Run logging for agenttail.

Every invocation of agenttail gets its own append-only log file. The
tailing engine, discovery and CLI write their diagnostics there, so a
run that silently missed a child session can be investigated afterwards
without the noise ever reaching the terminal.

Design Decisions:
    - One log file per run, named after the run id
    - Append-only writes so concurrent threads never clobber each other
    - Same line format as the rest of the tooling:
      <timestamp> [run=<id>] [source=<label>] <LEVEL> <message>
    - UTC timestamps
"""

from __future__ import annotations

import datetime
import os
import threading
from pathlib import Path
from typing import Optional


def log_root() -> Path:
    """
    Return the root directory for agenttail run logs.

    Uses the AGENT_TAIL_LOG_ROOT environment variable if set, otherwise
    falls back to ~/.agent-tail/logs.

    Example:
        >>> os.environ["AGENT_TAIL_LOG_ROOT"] = "/tmp/agent-tail"
        >>> log_root()
        PosixPath('/tmp/agent-tail')
    """
    root = os.environ.get("AGENT_TAIL_LOG_ROOT")
    if root:
        return Path(root)
    return Path.home() / ".agent-tail" / "logs"


def run_log_path(run_id: str, root: Optional[Path] = None) -> Path:
    """
    Resolve the log file path for a specific run.

    Args:
        run_id: Identifier of the run (typically a short UUID).
        root: Log root override. Defaults to log_root().

    Returns:
        Path: <root>/runs/<run_id>.log
    """
    return (root or log_root()) / "runs" / f"{run_id}.log"


class RunLogger:
    """
    Minimal append-only run logger.

    Attributes:
        run_id: The identifier of the run being logged.
        path: The filesystem path to the log file.

    Log Line Format:
        <timestamp> [run=<id>] [source=<label>] <LEVEL> <message>

    Example:
        >>> logger = RunLogger("3f2a9c1")
        >>> logger.info("[MAIN]", "Tailing started")
        # Writes: 2026-01-15T12:00:00Z [run=3f2a9c1] [source=[MAIN]] INFO Tailing started
    """

    def __init__(self, run_id: str, log_dir: Optional[Path] = None) -> None:
        self.run_id = run_id
        self.path = run_log_path(run_id, log_dir)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Tail threads, discovery timers and the UI thread all log here
        self._lock = threading.Lock()

    def _ts(self) -> str:
        """Return an ISO 8601 UTC timestamp like 2026-01-15T12:00:00Z."""
        return (
            datetime.datetime.now(datetime.timezone.utc)
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z")
        )

    def log(self, source: str, level: str, message: str) -> None:
        """
        Write a structured log line to the run's log file.

        Args:
            source: Source label or component emitting the log.
            level: Severity ("DEBUG", "INFO", "WARN", "ERROR").
            message: Human-readable message.
        """
        line = (
            f"{self._ts()} "
            f"[run={self.run_id}] "
            f"[source={source}] "
            f"{level.upper()} {message}\n"
        )
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def debug(self, source: str, message: str) -> None:
        """Log a diagnostic message (retry exhaustion, rejected ids)."""
        self.log(source, "DEBUG", message)

    def info(self, source: str, message: str) -> None:
        """Log an informational message."""
        self.log(source, "INFO", message)

    def warn(self, source: str, message: str) -> None:
        """Log a warning, such as a newly detected child session."""
        self.log(source, "WARN", message)

    def error(self, source: str, message: str) -> None:
        """Log a failure that stopped part of the run."""
        self.log(source, "ERROR", message)
