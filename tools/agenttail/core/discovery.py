"""
Discovery of child sessions that appear while a session is being tailed.

Purpose:
    When Claude Code starts a subagent, the subagent writes its own
    transcript to <session>/subagents/agent-<id>.jsonl. That file does not
    exist when tailing starts. ChildSourceDiscovery notices new files and
    attaches them to the multiplexer.

Triggers:
    - Directory watch: a watchdog observer on the subagents directory.
      Every event schedules one debounced rescan.
    - Early trigger: the main session just called the subagent tool, so a
      file is about to appear. Rescan shortly.
    - Inline trigger: the main session reported a finished subagent by id.
      Register that id directly.

Design Decisions:
    - Ids come from log content and file names, so they are validated
      against a strict hex pattern before they ever become a path
    - register_if_new() is the only place the known-id set changes
    - Attaching polls for the file with fixed delays and gives up quietly;
      the session stays listed even if its file never shows up
    - Every delayed action is a stored, cancellable Timer that re-checks
      the stopped flag under the lock before it acts
"""

import json
import os
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .errors import AgentTailError, InvalidChildIdError
from .model import WatchedSource, child_label
from .notify import Notifier, NullNotifier


# Hex ids from short hashes (7) to full SHA-1 (40)
CHILD_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{7,40}$")
CHILD_FILE_PATTERN = re.compile(r"^agent-([0-9a-fA-F]{7,40})\.jsonl$")

# Delay between a directory event and the rescan it triggers
RESCAN_DEBOUNCE = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    """
    How long to wait for a child file to appear.

    Attributes:
        max_retries: Existence checks after the first one.
        retry_delay: Seconds between checks.
        initial_delay: Seconds before the first check.
    """
    max_retries: int
    retry_delay: float
    initial_delay: float


# Task tool call seen; the file is usually created within a few hundred ms
EARLY_RETRY = RetryPolicy(max_retries=10, retry_delay=0.1, initial_delay=0.05)
# Finished subagent reported; the file normally exists already
INLINE_RETRY = RetryPolicy(max_retries=5, retry_delay=0.1, initial_delay=0.1)


def is_valid_child_id(child_id) -> bool:
    """
    Check a child id before it is used to build a path.

    Example:
        >>> is_valid_child_id("a0627b6")
        True
        >>> is_valid_child_id("../etc")
        False
    """
    return isinstance(child_id, str) and CHILD_ID_PATTERN.match(child_id) is not None


def child_path_for(directory: str, child_id: str) -> str:
    """
    Return the transcript path of a child session.

    Raises:
        InvalidChildIdError: child_id is not a valid hex id.
    """
    if not is_valid_child_id(child_id):
        raise InvalidChildIdError(f"Invalid child id: {child_id!r}")
    return os.path.join(directory, f"agent-{child_id}.jsonl")


def scan_for_new_children(directory: str, known_ids: Iterable[str]) -> List[str]:
    """
    List child ids present in a directory but not yet known.

    A missing or unreadable directory yields no ids; the subagents
    directory is only created when the first subagent starts.
    """
    known = set(known_ids)
    try:
        names = sorted(os.listdir(directory))
    except OSError:
        return []

    found = []
    for name in names:
        match = CHILD_FILE_PATTERN.match(name)
        if match and match.group(1) not in known:
            found.append(match.group(1))
    return found


def extract_child_ids(session_path: str) -> List[str]:
    """
    Collect the child ids a main session has reported so far.

    Reads toolUseResult.agentId from every record, in file order, and keeps
    only valid ids. Unreadable files and malformed lines are skipped.
    """
    ids: List[str] = []
    try:
        with open(session_path, "r", encoding="utf-8", errors="replace") as f:
            lines = f.readlines()
    except OSError:
        return ids

    for line in lines:
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except ValueError:
            continue
        result = data.get("toolUseResult") if isinstance(data, dict) else None
        child_id = result.get("agentId") if isinstance(result, dict) else None
        if is_valid_child_id(child_id) and child_id not in ids:
            ids.append(child_id)
    return ids


def attach_with_retry(
    path: str,
    child_id: str,
    multiplexer,
    notifier: Notifier,
    policy: RetryPolicy = INLINE_RETRY,
    is_active: Callable[[], bool] = lambda: True,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Wait for a child file to exist, then add it to the multiplexer.

    Blocks the calling thread; discovery runs it on a daemon thread.

    Args:
        path: Expected transcript path.
        child_id: Id of the child session (used for its label).
        multiplexer: Anything with add_source(WatchedSource).
        notifier: Receives the give-up note and attach failures.
        policy: Delays and retry count.
        is_active: Checked before each attempt; False aborts.
        sleep: Injected for tests.

    Returns:
        bool: True once the source was added.
    """
    sleep(policy.initial_delay)
    for attempt in range(policy.max_retries + 1):
        if not is_active():
            return False
        if os.path.exists(path):
            try:
                return multiplexer.add_source(WatchedSource(path, child_label(child_id)))
            except AgentTailError as exc:
                notifier.error(f"Failed to add child session watcher: {child_id} - {exc}")
                return False
        if attempt < policy.max_retries:
            sleep(policy.retry_delay)

    notifier.debug(f"Child session file not found after retries: {child_id}")
    return False


class _CallbackHandler(FileSystemEventHandler):
    """Call a function on every watchdog event."""

    def __init__(self, callback: Callable[[], None]) -> None:
        super().__init__()
        self._callback = callback

    def on_any_event(self, event) -> None:
        # Reading a child file must not look like a new one
        if event.event_type in ("opened", "closed_no_write"):
            return
        self._callback()


class ChildSourceDiscovery:
    """
    Find child session files and attach them as they appear.

    Attributes:
        directory: Directory holding the child transcripts.
        enabled: When False, ids are still registered (so sessions are
                 listed) but no file is attached and no watch started.
        watch_dir: Whether start_watch() sets up the directory observer.

    Example:
        >>> discovery = ChildSourceDiscovery(
        ...     known_ids={"a0627b6"},
        ...     directory="/p/3f2a.../subagents",
        ...     multiplexer=mux,
        ...     sessions=registry,
        ... )
        >>> discovery.start_watch()
        >>> discovery.handle_inline_trigger("b9d1e4f")
        >>> discovery.stop()
    """

    def __init__(
        self,
        known_ids: Iterable[str],
        directory: str,
        multiplexer,
        sessions=None,
        notifier: Optional[Notifier] = None,
        enabled: bool = True,
        watch_dir: bool = True,
        on_update: Optional[Callable[[], None]] = None,
    ) -> None:
        self.directory = os.path.abspath(directory)
        self.multiplexer = multiplexer
        self.sessions = sessions
        self.notifier = notifier or NullNotifier()
        self.enabled = enabled
        self.watch_dir = watch_dir
        self.on_update = on_update

        self._known: Set[str] = {i for i in known_ids if is_valid_child_id(i)}
        self._lock = threading.Lock()
        # Held around registry and display callbacks; stop() takes it too,
        # so none of them runs once stop() has returned
        self._callback_lock = threading.RLock()
        self._stopped = False
        self._watching = False

        self._observer = None
        self._dir_watch = None
        self._parent_watch = None
        # Pending timers; named keys are debounced, others are one-offs
        self._timers: Dict[object, threading.Timer] = {}

    # ------------------------------------------------------------
    # Known ids
    # ------------------------------------------------------------

    @property
    def known_ids(self) -> Set[str]:
        with self._lock:
            return set(self._known)

    def is_known(self, child_id: str) -> bool:
        with self._lock:
            return child_id in self._known

    def reset(self) -> None:
        """Forget every known id."""
        with self._lock:
            self._known.clear()

    def register_if_new(self, child_id: str, policy: RetryPolicy, message: str) -> bool:
        """
        Register a child id and start attaching its file.

        Returns:
            bool: True if the id was new and valid, False otherwise.
        """
        if not is_valid_child_id(child_id):
            self.notifier.debug(f"Ignoring invalid child id format: {child_id!r}")
            return False

        path = child_path_for(self.directory, child_id)

        with self._callback_lock:
            with self._lock:
                if self._stopped or child_id in self._known:
                    return False
                self._known.add(child_id)

            if self.sessions is not None:
                self.sessions.add_session(child_id, child_label(child_id), path)

            if self.enabled:
                self.notifier.warn(message)
                self._spawn(
                    lambda: attach_with_retry(
                        path,
                        child_id,
                        self.multiplexer,
                        self.notifier,
                        policy,
                        is_active=self._is_active,
                    ),
                    name=f"attach:{child_id}",
                )
        return True

    # ------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------

    def handle_early_trigger(self) -> None:
        """A child is probably starting: rescan the directory shortly."""
        if not self.enabled:
            return
        self._schedule(
            EARLY_RETRY.initial_delay,
            lambda: self._rescan("Early child session detected: {}"),
        )

    def handle_inline_trigger(self, child_id: str) -> None:
        """A child was reported finished: register it and mark it done."""
        if not is_valid_child_id(child_id):
            self.notifier.debug(f"Ignoring invalid child id format: {child_id!r}")
            return

        with self._callback_lock:
            if not self._is_active():
                return
            if not self.is_known(child_id):
                self.register_if_new(child_id, INLINE_RETRY, f"New child session detected: {child_id}")

            if self.sessions is not None:
                self.sessions.mark_done(child_id)
                self.notifier.debug(f"Child session completed: {child_id}")
            if self.on_update is not None:
                self.on_update()

    def rescan(self) -> List[str]:
        """Register every unknown child file now. Returns the new ids."""
        return self._rescan("New child session detected: {}")

    def _rescan(self, message: str) -> List[str]:
        if not self._is_active():
            return []
        registered = []
        for child_id in scan_for_new_children(self.directory, self.known_ids):
            if self.register_if_new(child_id, EARLY_RETRY, message.format(child_id)):
                registered.append(child_id)
        return registered

    # ------------------------------------------------------------
    # Directory watch
    # ------------------------------------------------------------

    def start_watch(self) -> None:
        """Watch the directory (or its parent until it exists)."""
        if not self.enabled or not self.watch_dir:
            return
        with self._lock:
            if self._stopped or self._watching:
                return
            self._watching = True
            self._observer = Observer()
            self._observer.daemon = True
        self._observer.start()
        self._try_watch_directory()

    # observer.schedule() takes the observer's lock, and the observer thread
    # takes ours from inside event callbacks: never call it holding _lock.

    def _try_watch_directory(self) -> None:
        with self._lock:
            if self._stopped or self._observer is None or self._dir_watch is not None:
                return
            observer = self._observer

        if not os.path.isdir(self.directory):
            # Not created yet; wait for it from the parent
            self._watch_parent(observer)
            return
        try:
            watch = observer.schedule(_CallbackHandler(self._on_directory_event), self.directory)
        except OSError:
            self._watch_parent(observer)
            return

        with self._lock:
            if self._stopped:
                return
            self._dir_watch = watch
            parent_watch, self._parent_watch = self._parent_watch, None

        if parent_watch is not None:
            self._unschedule(observer, parent_watch)
        self.notifier.debug(f"Watching {self.directory}")
        # Catch files created before the watch was in place
        self._schedule(RESCAN_DEBOUNCE, self.rescan, key="rescan")

    def _watch_parent(self, observer) -> None:
        with self._lock:
            if self._stopped or self._parent_watch is not None:
                return
        parent = os.path.dirname(self.directory)
        try:
            watch = observer.schedule(_CallbackHandler(self._on_parent_event), parent)
        except OSError as exc:
            # Early and inline triggers still work without a watch
            self.notifier.debug(f"Cannot watch {parent} either: {exc}")
            return
        with self._lock:
            self._parent_watch = watch

    def _on_directory_event(self) -> None:
        self._schedule(RESCAN_DEBOUNCE, self.rescan, key="rescan")

    def _on_parent_event(self) -> None:
        # Re-try off the observer thread, once per burst of events
        self._schedule(RESCAN_DEBOUNCE, self._try_watch_directory, key="rewatch")

    def _unschedule(self, observer, watch) -> None:
        try:
            observer.unschedule(watch)
        except (KeyError, OSError) as exc:
            self.notifier.debug(f"Could not drop parent watch: {exc}")

    # ------------------------------------------------------------
    # Lifecycle and scheduling
    # ------------------------------------------------------------

    def stop(self) -> None:
        """
        Cancel pending work and stop watching. Safe to call more than once.

        Waits for a registration or trigger already in progress; after this
        returns, discovery makes no further registry or display calls.
        """
        with self._callback_lock:
            with self._lock:
                self._stopped = True
                self._watching = False
                timers = list(self._timers.values())
                self._timers.clear()
                observer, self._observer = self._observer, None
                self._dir_watch = None
                self._parent_watch = None

        for timer in timers:
            timer.cancel()
        if observer is not None:
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join(timeout=2)

    def _is_active(self) -> bool:
        with self._lock:
            return not self._stopped

    def _schedule(self, delay: float, fn: Callable[[], object], key: Optional[str] = None) -> None:
        """Run fn after delay unless stopped first. A key debounces."""
        token = key if key is not None else object()

        def run() -> None:
            with self._lock:
                if self._timers.get(token) is not timer:
                    return
                del self._timers[token]
                if self._stopped:
                    return
            fn()

        with self._lock:
            if self._stopped:
                return
            previous = self._timers.get(token)
            if previous is not None:
                previous.cancel()
            timer = threading.Timer(delay, run)
            timer.daemon = True
            self._timers[token] = timer
        timer.start()

    def _spawn(self, fn: Callable[[], object], name: str) -> None:
        threading.Thread(target=fn, name=name, daemon=True).start()
