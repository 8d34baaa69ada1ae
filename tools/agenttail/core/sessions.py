"""
Session registry for switching between tailed sources.

Purpose:
    In interactive mode only one session is shown at a time. Output of the
    other sessions is held in a per-session buffer, so switching to one of
    them later shows everything it printed in the meantime.

Design Decisions:
    - The primary session is always first; every other session is inserted
      right after it, so the newest child sits next to the primary
    - The active session is tracked by id, so inserting sessions never
      changes which one is active
    - Buffers are bounded deques; the oldest lines fall out first
    - Buffers survive switching, so repeated switches show full history
    - One RLock guards everything; output arrives on tail threads while
      switches arrive on the UI thread
"""

import threading
from collections import deque
from typing import Callable, List, Optional

from .model import MAIN_SESSION_ID, Session, SessionSnapshot, SessionSummary


DEFAULT_BUFFER_SIZE = 1000

OutputCallback = Callable[[str, Session], None]
AddedCallback = Callable[[Session], None]
SwitchedCallback = Callable[[Session, List[str], List[Session]], None]


class SessionRegistry:
    """
    Track one output session per source and route output to it.

    Attributes:
        buffer_size: Maximum lines held per inactive session.
        primary_id: Id of the session that is always listed first.

    Example:
        >>> registry = SessionRegistry(on_output=lambda text, s: print(text))
        >>> registry.add_session("main", "[MAIN]", "/p/main.jsonl")
        >>> registry.add_session("a0627b6", "[a0627b6]", "/p/agent-a0627b6.jsonl")
        >>> registry.handle_output("[a0627b6]", "hello")   # buffered
        >>> registry.switch_next().id
        'a0627b6'
    """

    def __init__(
        self,
        on_output: Optional[OutputCallback] = None,
        on_added: Optional[AddedCallback] = None,
        on_switched: Optional[SwitchedCallback] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        primary_id: str = MAIN_SESSION_ID,
    ) -> None:
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be at least 1, got {buffer_size}")
        self.buffer_size = buffer_size
        self.primary_id = primary_id
        self._on_output = on_output
        self._on_added = on_added
        self._on_switched = on_switched

        self._sessions: List[Session] = []
        self._active_id: Optional[str] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------

    def add_session(self, id: str, label: str, path: str) -> Session:
        """
        Register a session, or return the existing one with the same id.

        The first session ever added becomes active.
        """
        with self._lock:
            existing = self._find(id)
            if existing is not None:
                return existing

            session = Session(
                id=id,
                label=label,
                path=path,
                buffer=deque(maxlen=self.buffer_size),
            )
            if id == self.primary_id:
                self._sessions.insert(0, session)
            elif self._sessions and self._sessions[0].id == self.primary_id:
                self._sessions.insert(1, session)
            else:
                self._sessions.insert(0, session)

            if self._active_id is None:
                self._active_id = id

            if self._on_added is not None:
                self._on_added(session)
            return session

    def reset(self) -> None:
        """Drop every session, e.g. before following a different main session."""
        with self._lock:
            self._sessions.clear()
            self._active_id = None

    def get_all(self) -> List[Session]:
        """Return sessions in display order (a copy of the list)."""
        with self._lock:
            return list(self._sessions)

    def get_active(self) -> Optional[Session]:
        with self._lock:
            if self._active_id is None:
                return None
            return self._find(self._active_id)

    @property
    def active_index(self) -> int:
        with self._lock:
            return self._index_of(self._active_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------
    # Switching
    # ------------------------------------------------------------

    def switch_next(self) -> Optional[Session]:
        """Activate the next session, wrapping around at the end."""
        return self._switch_by(1)

    def switch_prev(self) -> Optional[Session]:
        """Activate the previous session, wrapping around at the start."""
        return self._switch_by(-1)

    def switch_to(self, id: str) -> Optional[Session]:
        """Activate the session with this id. Returns None if unknown."""
        with self._lock:
            session = self._find(id)
            if session is None:
                return None
            return self._activate(session)

    def _switch_by(self, step: int) -> Optional[Session]:
        with self._lock:
            if not self._sessions:
                return None
            index = self._index_of(self._active_id)
            if index < 0:
                index = 0
            target = self._sessions[(index + step) % len(self._sessions)]
            return self._activate(target)

    def _activate(self, session: Session) -> Session:
        self._active_id = session.id
        if self._on_switched is not None:
            # History is a copy; the buffer itself stays for later switches
            self._on_switched(session, self.get_buffer(session.id), list(self._sessions))
        return session

    # ------------------------------------------------------------
    # Output routing
    # ------------------------------------------------------------

    def handle_output(self, label: str, content: str) -> None:
        """
        Route one formatted line to its session.

        The active session's output goes straight to the output callback;
        any other session's output is buffered. Output for an unknown
        label is dropped.
        """
        with self._lock:
            session = self._find_by_label(label) or self._find(label)
            if session is None:
                return
            if session.id == self._active_id:
                if self._on_output is not None:
                    self._on_output(content, session)
            else:
                # deque(maxlen) evicts the oldest line on overflow
                session.buffer.append(content)

    def get_buffer(self, id: str) -> List[str]:
        with self._lock:
            session = self._find(id)
            return list(session.buffer) if session is not None else []

    def clear_buffer(self, id: str) -> None:
        with self._lock:
            session = self._find(id)
            if session is not None:
                session.buffer.clear()

    def mark_done(self, id: str) -> None:
        """Mark a session finished. Unknown ids are ignored."""
        with self._lock:
            session = self._find(id)
            if session is not None:
                session.done = True

    def snapshot(self) -> SessionSnapshot:
        """Return the ordered session list and active index for a status line."""
        with self._lock:
            return SessionSnapshot(
                sessions=[
                    SessionSummary(
                        id=s.id,
                        label=s.label,
                        buffered=len(s.buffer),
                        done=s.done,
                    )
                    for s in self._sessions
                ],
                active_index=self._index_of(self._active_id),
            )

    # ------------------------------------------------------------
    # Lookup helpers (callers hold the lock)
    # ------------------------------------------------------------

    def _find(self, id: str) -> Optional[Session]:
        for session in self._sessions:
            if session.id == id:
                return session
        return None

    def _find_by_label(self, label: str) -> Optional[Session]:
        for session in self._sessions:
            if session.label == label:
                return session
        return None

    def _index_of(self, id: Optional[str]) -> int:
        for index, session in enumerate(self._sessions):
            if session.id == id:
                return index
        return -1
