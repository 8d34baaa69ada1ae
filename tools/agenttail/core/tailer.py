"""
Real-time file tailing for agent session logs.

This module provides FileTailer, which watches one session file and emits
each record exactly once while an external process keeps appending to it.

Purpose:
    Agent CLIs write their transcripts as they work. Some append JSONL
    lines, some rewrite a whole JSON document, and editors or atomic-write
    helpers occasionally replace the file underneath us. The tailer hides
    all of that and hands its caller one record at a time.

Design Decisions:
    - Two triggers, one read path: a watchdog observer on the file's
      directory and a fixed-interval stat poll both only *request* a
      re-read. Neither reads on its own.
    - Re-reads are serialized per file. A request that arrives while a read
      is running sets a pending flag, and exactly one more read follows.
    - The consumed region is fingerprinted, so an in-place rewrite is told
      apart from an append. Record count and inode catch truncation and
      atomic replacement. Any of the three resets the cursor to zero.
    - A trailing fragment without a newline is held back until the writer
      finishes the line.
    - Missing files during a re-read are expected (replace in progress) and
      only retried; other I/O errors go to the error callback.
"""

import hashlib
import os
import threading
from typing import Callable, List, Optional, Tuple

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .errors import SourceUnavailableError, WatchError
from .model import TailMode
from .notify import Notifier, NullNotifier


# Default stat poll interval in seconds
DEFAULT_POLL_INTERVAL = 0.5

LineCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]

# Event types that can mean new content. Opened/closed-without-write
# events are left out: our own reads produce them.
CHANGE_EVENTS = frozenset({
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
})


def fingerprint(data: bytes) -> str:
    """Return a cheap content hash used to detect rewrites."""
    return hashlib.blake2b(data, digest_size=16).hexdigest()


def split_records(data: bytes) -> Tuple[List[str], int]:
    """
    Split raw file content into complete, non-blank records.

    Only newline-terminated lines count. Whatever follows the last newline
    is a line still being written and is left for a later read.

    Args:
        data: Raw file content.

    Returns:
        Tuple of (records, consumed byte length).

    Example:
        >>> split_records(b'{"a": 1}\\n\\n{"b": 2}\\n{"c"')
        (['{"a": 1}', '{"b": 2}'], 18)
    """
    end = data.rfind(b"\n")
    if end < 0:
        return [], 0
    consumed = end + 1
    text = data[:consumed].decode("utf-8", errors="replace")
    records = []
    for line in text.split("\n"):
        line = line.rstrip("\r")
        if line.strip():
            records.append(line)
    return records, consumed


def select_initial(records: List[str], initial_lines: Optional[int]) -> List[str]:
    """
    Pick which of the records present at start-up are emitted.

    None or a negative number emits everything, 0 emits nothing, and a
    positive number emits that many records from the end.
    """
    if initial_lines is None or initial_lines < 0:
        return records
    if initial_lines == 0:
        return []
    return records[-initial_lines:]


class _PathEventHandler(FileSystemEventHandler):
    """Forward watchdog events that touch one path to a callback."""

    def __init__(self, path: str, callback: Callable[[], None]) -> None:
        super().__init__()
        self._path = path
        self._callback = callback

    def on_any_event(self, event) -> None:
        if event.is_directory or event.event_type not in CHANGE_EVENTS:
            return
        touched = {os.path.abspath(os.fsdecode(event.src_path))}
        dest = getattr(event, "dest_path", "")
        if dest:
            # Atomic replace shows up as a move onto our path
            touched.add(os.path.abspath(os.fsdecode(dest)))
        if self._path in touched:
            self._callback()


class FileTailer:
    """
    Tail a single file and emit each record exactly once.

    Attributes:
        path: Absolute path of the file being tailed.
        mode: TailMode.LINES or TailMode.DOCUMENT.
        poll_interval: Seconds between stat polls while following.
        cursor: Number of records already consumed (line mode).

    Example:
        >>> tailer = FileTailer()
        >>> tailer.start("session.jsonl", on_line=print, follow=True)
        >>> # ... lines are printed as the file grows ...
        >>> tailer.stop()
    """

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.notifier = notifier or NullNotifier()
        self.path = ""
        self.mode = TailMode.LINES
        self.poll_interval = DEFAULT_POLL_INTERVAL
        self.cursor = 0

        self._on_line: Optional[LineCallback] = None
        self._on_error: Optional[ErrorCallback] = None

        # Consumed region of the file and its fingerprint
        self._consumed = 0
        self._fingerprint = fingerprint(b"")
        # Last observed (inode, size, mtime_ns); None until the first read
        self._identity: Optional[Tuple[int, int, int]] = None

        self._active = False
        self._started = False
        self._reading = False
        self._pending = False
        # Guards _active/_reading/_pending
        self._state_lock = threading.Lock()
        # Held while a record is handed to the caller, so stop() can
        # guarantee no callback runs after it returns
        self._emit_lock = threading.RLock()

        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._observer = None

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def start(
        self,
        path: str,
        on_line: LineCallback,
        on_error: Optional[ErrorCallback] = None,
        mode: TailMode = TailMode.LINES,
        follow: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        initial_lines: Optional[int] = None,
    ) -> None:
        """
        Read the existing content and, if following, start watching.

        The initial read happens synchronously, so every record present at
        start-up has been delivered when this method returns.

        Args:
            path: File to tail.
            on_line: Called with each record (line or whole document).
            on_error: Called with unexpected I/O errors.
            mode: How content is split into records.
            follow: Keep watching for changes after the initial read.
            poll_interval: Seconds between stat polls.
            initial_lines: How many existing records to emit (line mode).

        Raises:
            SourceUnavailableError: The file cannot be opened.
            RuntimeError: The tailer was already started.
        """
        if self._started:
            raise RuntimeError("FileTailer.start() called twice")
        self._started = True

        self.path = os.path.abspath(path)
        self.mode = mode
        self.poll_interval = poll_interval
        self._on_line = on_line
        self._on_error = on_error

        try:
            data, identity = self._read_file()
        except OSError as exc:
            raise SourceUnavailableError(self.path, exc.strerror or str(exc)) from exc

        with self._state_lock:
            self._active = True

        if self.mode is TailMode.DOCUMENT:
            self._process_document(data, identity)
        else:
            records, consumed = split_records(data)
            self._commit(records, consumed, data, identity)
            for record in select_initial(records, initial_lines):
                self._emit(record)

        if follow:
            self._start_observer()
            self._poll_thread = threading.Thread(
                target=self._poll_loop,
                name=f"tail-poll:{os.path.basename(self.path)}",
                daemon=True,
            )
            self._poll_thread.start()

    def stop(self) -> None:
        """
        Stop watching. Safe to call more than once.

        When this returns, no further on_line or on_error call will be
        made, including from triggers that fired before the call.
        """
        with self._emit_lock:
            with self._state_lock:
                was_active = self._active
                self._active = False
                self._pending = False
        self._stop_event.set()

        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join(timeout=2)

        thread, self._poll_thread = self._poll_thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)

        if was_active:
            self.notifier.debug(f"Stopped tailing {self.path}")

    @property
    def active(self) -> bool:
        return self._active

    # ------------------------------------------------------------
    # Re-read scheduling
    # ------------------------------------------------------------

    def refresh(self) -> None:
        """
        Request a re-read of the file.

        Runs the read on the calling thread unless one is already in
        flight, in which case the request is folded into a single pending
        read performed by the thread that owns the current one.
        """
        with self._state_lock:
            if not self._active:
                return
            if self._reading:
                self._pending = True
                return
            self._reading = True

        try:
            while True:
                self._read_once()
                with self._state_lock:
                    if self._pending and self._active:
                        self._pending = False
                        continue
                    self._reading = False
                    return
        except Exception:
            with self._state_lock:
                self._reading = False
            raise

    def _poll_loop(self) -> None:
        """Background thread: request a read when the file's stat changes."""
        while not self._stop_event.wait(self.poll_interval):
            if self._stat_changed():
                self.refresh()

    def _stat_changed(self) -> bool:
        try:
            st = os.stat(self.path)
        except OSError:
            # Missing during a replace; the next poll will see the new file
            return False
        return (st.st_ino, st.st_size, st.st_mtime_ns) != self._identity

    def _start_observer(self) -> None:
        """Watch the file's directory for change notifications."""
        handler = _PathEventHandler(self.path, self.refresh)
        directory = os.path.dirname(self.path)
        observer = Observer()
        try:
            observer.schedule(handler, directory, recursive=False)
            observer.daemon = True
            observer.start()
        except OSError as exc:
            # Out of inotify watches and the like; stat polling keeps running
            self._report(WatchError(f"Cannot watch {directory}: {exc}; polling only"))
            return
        self._observer = observer

    # ------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------

    def _read_file(self) -> Tuple[bytes, Tuple[int, int, int]]:
        # fstat on the open handle keeps identity and content consistent
        with open(self.path, "rb") as f:
            st = os.fstat(f.fileno())
            data = f.read()
        return data, (st.st_ino, st.st_size, st.st_mtime_ns)

    def _read_once(self) -> None:
        """Read the file and emit whatever is new since the last read."""
        try:
            data, identity = self._read_file()
        except FileNotFoundError:
            return
        except OSError as exc:
            self._report(exc)
            return

        if self.mode is TailMode.DOCUMENT:
            self._process_document(data, identity)
            return

        records, consumed = split_records(data)
        reason = self._reset_reason(records, data, identity)
        if reason:
            self.notifier.debug(f"{self.path} {reason}; re-reading from start")
            self.cursor = 0
            self._consumed = 0

        new_records = records[self.cursor:]
        self._commit(records, consumed, data, identity)
        for record in new_records:
            self._emit(record)

    def _reset_reason(self, records: List[str], data: bytes, identity) -> str:
        """Return why the cursor must go back to zero, or ''."""
        if self._identity is not None and identity[0] != self._identity[0]:
            return "was replaced"
        if len(records) < self.cursor:
            return "was truncated"
        if len(data) < self._consumed or fingerprint(data[:self._consumed]) != self._fingerprint:
            return "was rewritten"
        return ""

    def _commit(self, records: List[str], consumed: int, data: bytes, identity) -> None:
        self.cursor = len(records)
        self._consumed = consumed
        self._fingerprint = fingerprint(data[:consumed])
        self._identity = identity

    def _process_document(self, data: bytes, identity) -> None:
        """Whole-document mode: emit the file when its content changes."""
        self._identity = identity
        digest = fingerprint(data)
        if digest == self._fingerprint:
            return
        self._fingerprint = digest
        self._consumed = len(data)
        text = data.decode("utf-8", errors="replace")
        if text.strip():
            self._emit(text)

    # ------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------

    def _emit(self, record: str) -> None:
        with self._emit_lock:
            if not self._active or self._on_line is None:
                return
            try:
                self._on_line(record)
            except Exception as exc:
                # One bad record must not stop the records after it
                self._report(exc)

    def _report(self, exc: Exception) -> None:
        with self._emit_lock:
            if not self._active:
                return
            self.notifier.error(f"Error tailing {self.path}: {exc}")
            if self._on_error is not None:
                self._on_error(exc)
