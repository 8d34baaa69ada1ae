"""
Follow the newest Claude session of a project.

When a user starts a new Claude conversation in the same project, the
transcript being tailed goes quiet and a new one appears next to it.
FollowLatestController notices that and tells the CLI to switch.

Design Decisions:
    - Activity time counts subagent writes, so a session whose subagents
      are still busy is not abandoned for a newer, idle one
    - A candidate must still be the newest after confirm_delay seconds;
      short-lived sessions never cause a switch
    - One pending candidate at a time; a different newer candidate
      restarts the confirmation delay
"""

import threading
from pathlib import Path
from typing import Callable, Optional

from ..utils.paths import SessionFile, find_latest_main_session
from .notify import Notifier, NullNotifier


DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_CONFIRM_DELAY = 5.0


class FollowLatestController:
    """
    Poll a project directory and switch to a newer main session.

    Attributes:
        project_dir: Claude project directory holding the main sessions.
        poll_interval: Seconds between directory scans.
        confirm_delay: Seconds a candidate must stay newest before switching.

    Example:
        >>> controller = FollowLatestController(
        ...     project_dir=Path("~/.claude/projects/-src-app").expanduser(),
        ...     get_current_path=lambda: current,
        ...     on_switch=restart_watch,
        ... )
        >>> controller.start()
    """

    def __init__(
        self,
        project_dir: Path,
        get_current_path: Callable[[], str],
        on_switch: Callable[[SessionFile], None],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        confirm_delay: float = DEFAULT_CONFIRM_DELAY,
        notifier: Optional[Notifier] = None,
        find_latest: Callable[[Path], Optional[SessionFile]] = find_latest_main_session,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.get_current_path = get_current_path
        self.on_switch = on_switch
        self.poll_interval = poll_interval
        self.confirm_delay = confirm_delay
        self.notifier = notifier or NullNotifier()
        self._find_latest = find_latest

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._pending_path: Optional[str] = None
        self._pending_timer: Optional[threading.Timer] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._poll_loop, name="follow-latest", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop polling and drop any pending switch. Safe to call more than once."""
        self._stop_event.set()
        with self._lock:
            self._clear_pending()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)

    @property
    def pending_path(self) -> Optional[str]:
        with self._lock:
            return self._pending_path

    # ------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll()
            self._stop_event.wait(self.poll_interval)

    def poll(self) -> None:
        """Scan once and schedule a switch if a newer session exists."""
        try:
            latest = self._find_latest(self.project_dir)
        except OSError as exc:
            self.notifier.debug(f"Scan of {self.project_dir} failed: {exc}")
            return

        if latest is None:
            with self._lock:
                self._clear_pending()
            return
        if not self._is_current(latest.path):
            self._schedule_switch(str(latest.path))

    def _is_current(self, path) -> bool:
        return Path(path).resolve() == Path(self.get_current_path()).resolve()

    # ------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------

    def _schedule_switch(self, path: str) -> None:
        with self._lock:
            if self._stop_event.is_set() or self._pending_path == path:
                return
            self._clear_pending()
            self._pending_path = path
            timer = threading.Timer(self.confirm_delay, self._confirm, args=(path,))
            timer.daemon = True
            self._pending_timer = timer
        timer.start()

    def _confirm(self, path: str) -> None:
        with self._lock:
            if self._stop_event.is_set() or self._pending_path != path:
                return

        try:
            latest = self._find_latest(self.project_dir)
        except OSError as exc:
            self.notifier.debug(f"Scan of {self.project_dir} failed: {exc}")
            latest = None

        with self._lock:
            still_pending = self._pending_path == path and not self._stop_event.is_set()
            self._clear_pending()

        if (
            still_pending
            and latest is not None
            and str(latest.path) == path
            and not self._is_current(latest.path)
        ):
            self.notifier.info(f"Switching to newer session: {latest.path.name}")
            self.on_switch(latest)

    def _clear_pending(self) -> None:
        # Caller holds _lock
        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None
        self._pending_path = None
