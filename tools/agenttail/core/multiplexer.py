"""
Fan-in of many tailed files into one labelled stream.

Purpose:
    A Claude session is a main transcript plus one file per subagent. The
    SourceMultiplexer owns one FileTailer per file, tags every record with
    the label of the file it came from, and forwards (label, record) pairs
    to a single callback.

Design Decisions:
    - Sources are keyed by absolute path; adding a known path is a no-op
    - Tail options given to start() apply to every source, including ones
      added later by discovery, except initial_lines: a source added
      mid-run was written after tailing began and is read from its first
      record
    - Stopping one tailer can never prevent stopping the others
"""

import os
import threading
from typing import Any, Callable, Dict, Iterable, Optional

from .errors import SourceUnavailableError
from .model import WatchedSource
from .notify import Notifier, NullNotifier
from .tailer import FileTailer


OutputCallback = Callable[[str, str], None]
ErrorCallback = Callable[[str, Exception], None]


class SourceMultiplexer:
    """
    Tail several files and forward their records tagged with a label.

    Attributes:
        notifier: Where per-source failures are reported.
        source_count: Number of sources currently tailed.

    Example:
        >>> mux = SourceMultiplexer()
        >>> mux.start(
        ...     [WatchedSource("main.jsonl", "[MAIN]")],
        ...     on_line=lambda label, line: print(label, line),
        ... )
        >>> mux.add_source(WatchedSource("agent-a0627b6.jsonl", "[a0627b6]"))
        True
        >>> mux.stop()
    """

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.notifier = notifier or NullNotifier()
        # Map from absolute path to (source, tailer)
        self._tailers: Dict[str, FileTailer] = {}
        self._sources: Dict[str, WatchedSource] = {}
        self._lock = threading.Lock()
        self._on_line: Optional[OutputCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._tail_options: Dict[str, Any] = {}
        self._running = False

    def start(
        self,
        sources: Iterable[WatchedSource],
        on_line: OutputCallback,
        on_error: Optional[ErrorCallback] = None,
        **tail_options: Any,
    ) -> None:
        """
        Start tailing the initial sources.

        Args:
            sources: Files to tail, in the order they should start.
            on_line: Called with (label, record) for every record.
            on_error: Called with (label, exception) for I/O failures.
            **tail_options: Passed to FileTailer.start (mode, follow,
                            poll_interval, initial_lines). initial_lines
                            only limits these initial sources.

        Raises:
            SourceUnavailableError: One of the initial sources is missing.
                                    Sources already started are stopped.
        """
        self._on_line = on_line
        self._on_error = on_error
        self._tail_options = dict(tail_options)
        initial_lines = self._tail_options.pop("initial_lines", None)
        self._running = True
        try:
            for source in sources:
                self._attach(source, initial_lines)
        except SourceUnavailableError:
            self.stop()
            raise

    def add_source(self, source: WatchedSource) -> bool:
        """
        Start tailing one more file, emitting every record it holds.

        Returns:
            bool: True if the source was added, False if its path is
                  already tracked or the multiplexer is stopped.

        Raises:
            SourceUnavailableError: The file cannot be opened.
        """
        return self._attach(source)

    def has_source(self, path: str) -> bool:
        with self._lock:
            return os.path.abspath(path) in self._tailers

    @property
    def source_count(self) -> int:
        with self._lock:
            return len(self._tailers)

    def sources(self):
        """Return the tracked sources in the order they were added."""
        with self._lock:
            return list(self._sources.values())

    def stop(self) -> None:
        """Stop every tailer. Safe to call more than once."""
        with self._lock:
            self._running = False
            tailers = list(self._tailers.items())
            self._tailers.clear()
            self._sources.clear()

        for path, tailer in tailers:
            try:
                tailer.stop()
            except Exception as exc:
                # Keep going so the remaining tailers still stop
                self.notifier.error(f"Failed to stop tailer for {path}: {exc}")

    def _attach(self, source: WatchedSource, initial_lines: Optional[int] = None) -> bool:
        key = os.path.abspath(source.path)
        tailer = FileTailer(notifier=self.notifier)

        with self._lock:
            if not self._running or key in self._tailers:
                return False
            # Reserve the slot before the initial read so a concurrent
            # add_source for the same path is rejected
            self._tailers[key] = tailer
            self._sources[key] = source

        label = source.label

        def on_line(record: str) -> None:
            if self._on_line is not None:
                self._on_line(label, record)

        def on_error(exc: Exception) -> None:
            if self._on_error is not None:
                self._on_error(label, exc)

        try:
            tailer.start(key, on_line, on_error=on_error, initial_lines=initial_lines, **self._tail_options)
        except Exception:
            with self._lock:
                self._tailers.pop(key, None)
                self._sources.pop(key, None)
            raise

        # stop() may have run while the initial read was in progress
        with self._lock:
            still_tracked = self._tailers.get(key) is tailer
        if not still_tracked:
            tailer.stop()
            return False

        self.notifier.debug(f"Tailing {source.label} {key}")
        return True
