"""
Persistent index of Codex sessions by working directory.

Codex stores rollouts by date (sessions/YYYY/MM/DD/rollout-*.jsonl), not
by project. Finding "the latest session for this project" would mean
opening every rollout to read its session_meta line. This cache does that
once and keeps the result in a small JSON file next to the sessions root.

File format:
    {
      "version": 1,
      "last_scan_time": 1768478400.0,
      "sessions": [{"path": "...", "mtime": 1768478400.0, "cwd": "/src/app"}]
    }

Design Decisions:
    - A file with any other version is discarded and rebuilt from scratch
    - Sessions for one cwd are kept newest first
    - Refreshes only scan today's date directory, at most every 2 seconds
    - Best effort: unreadable rollouts are skipped, write failures ignored
"""

import datetime
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.notify import Notifier, NullNotifier


CACHE_VERSION = 1
CACHE_FILE_NAME = ".agent-tail-cache.json"
# Minimum seconds between incremental refreshes
REFRESH_INTERVAL = 2.0


@dataclass
class IndexedSession:
    path: str
    mtime: float
    cwd: str


def read_session_cwd(path: Path) -> Optional[str]:
    """Return the cwd from a rollout's session_meta first line, if present."""
    try:
        with path.open("r", encoding="utf-8", errors="replace") as f:
            first = f.readline()
    except OSError:
        return None
    if not first.strip():
        return None
    try:
        meta = json.loads(first)
    except ValueError:
        return None
    if not isinstance(meta, dict) or meta.get("type") != "session_meta":
        return None
    payload = meta.get("payload")
    cwd = payload.get("cwd") if isinstance(payload, dict) else None
    return cwd if isinstance(cwd, str) and cwd else None


class SessionIndexCache:
    """
    cwd -> sessions index for Codex rollouts, persisted to disk.

    Attributes:
        base_dir: Codex sessions root (…/.codex/sessions).
        cache_file: Where the index is stored.

    Example:
        >>> cache = SessionIndexCache(Path.home() / ".codex" / "sessions")
        >>> latest = cache.latest_for_cwd("/home/me/src/app")
        >>> latest.path if latest else None
        '/home/me/.codex/sessions/2026/01/15/rollout-...jsonl'
    """

    def __init__(
        self,
        base_dir: Path,
        cache_file: Optional[Path] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
        today: Optional[Callable[[], datetime.date]] = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.cache_file = Path(cache_file) if cache_file else self.base_dir.parent / CACHE_FILE_NAME
        self.notifier = notifier or NullNotifier()
        self._clock = clock
        self._today = today or datetime.date.today
        self._by_cwd: Dict[str, List[IndexedSession]] = {}
        self._loaded = False
        self._last_refresh: Optional[float] = None

    # ------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------

    def ensure_loaded(self) -> None:
        """Load the index from disk, or build it if missing or stale."""
        if self._loaded:
            return
        if not self.load():
            self.scan_all()
            self.save()
        self._loaded = True

    def load(self) -> bool:
        """
        Read the index file.

        Returns:
            bool: False when the file is missing, unreadable or has a
                  different version; the in-memory index is then untouched.
        """
        try:
            data = json.loads(self.cache_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False
        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            self.notifier.debug(f"Discarding session index {self.cache_file}")
            return False

        sessions = []
        for entry in data.get("sessions") or []:
            try:
                sessions.append(IndexedSession(
                    path=str(entry["path"]),
                    mtime=float(entry["mtime"]),
                    cwd=str(entry["cwd"]),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        self._rebuild(sessions)
        return True

    def save(self) -> None:
        data = {
            "version": CACHE_VERSION,
            "last_scan_time": self._clock(),
            "sessions": [asdict(s) for group in self._by_cwd.values() for s in group],
        }
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as exc:
            self.notifier.debug(f"Could not write session index: {exc}")

    def clear(self) -> None:
        """Forget the in-memory index; the next lookup reloads it."""
        self._by_cwd.clear()
        self._loaded = False
        self._last_refresh = None

    # ------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------

    def scan_all(self) -> None:
        """Index every rollout under the sessions root."""
        sessions = []
        if self.base_dir.is_dir():
            for path in self.base_dir.rglob("rollout-*.jsonl"):
                session = self._index_file(path)
                if session is not None:
                    sessions.append(session)
        self._rebuild(sessions)

    def maybe_refresh(self) -> bool:
        """
        Add today's new rollouts to the index.

        Returns:
            bool: True if a refresh scan ran (it may have found nothing).
        """
        now = self._clock()
        if self._last_refresh is not None and now - self._last_refresh < REFRESH_INTERVAL:
            return False
        self._last_refresh = now

        today = self._today()
        today_dir = self.base_dir / f"{today.year:04d}" / f"{today.month:02d}" / f"{today.day:02d}"
        if not today_dir.is_dir():
            return True

        known = {s.path for group in self._by_cwd.values() for s in group}
        added = False
        for path in sorted(today_dir.glob("rollout-*.jsonl")):
            if str(path) in known:
                continue
            session = self._index_file(path)
            if session is not None:
                self._by_cwd.setdefault(session.cwd, []).append(session)
                self._by_cwd[session.cwd].sort(key=lambda s: s.mtime, reverse=True)
                added = True
        if added:
            self.save()
        return True

    def _index_file(self, path: Path) -> Optional[IndexedSession]:
        cwd = read_session_cwd(path)
        if cwd is None:
            return None
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        return IndexedSession(path=str(path), mtime=mtime, cwd=cwd)

    def _rebuild(self, sessions: List[IndexedSession]) -> None:
        self._by_cwd = {}
        for session in sessions:
            self._by_cwd.setdefault(session.cwd, []).append(session)
        for group in self._by_cwd.values():
            group.sort(key=lambda s: s.mtime, reverse=True)

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def latest_for_cwd(self, cwd: str) -> Optional[IndexedSession]:
        """Newest session recorded for exactly this cwd whose file still exists."""
        self.ensure_loaded()
        self.maybe_refresh()
        for session in self._by_cwd.get(cwd, []):
            if Path(session.path).exists():
                return session
        return None

    def sessions_matching(self, fragment: str) -> List[IndexedSession]:
        """All sessions whose cwd contains fragment (case-insensitive), newest first."""
        self.ensure_loaded()
        self.maybe_refresh()
        needle = fragment.lower()
        found = [
            s for cwd, group in self._by_cwd.items() if needle in cwd.lower()
            for s in group
        ]
        found.sort(key=lambda s: s.mtime, reverse=True)
        return found

    def projects(self) -> List[str]:
        """Every working directory in the index."""
        self.ensure_loaded()
        return list(self._by_cwd.keys())
