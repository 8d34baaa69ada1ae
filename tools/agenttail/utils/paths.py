"""
Filesystem locations of agent session transcripts.

This module knows where each supported agent CLI keeps its transcripts
and how to pick one: the most recent, or the one matching a partial id.

Layouts:
    Claude  ~/.claude/projects/<project>/<uuid>.jsonl
            children in <project>/<uuid>/subagents/agent-<id>.jsonl
    Codex   ~/.codex/sessions/YYYY/MM/DD/rollout-<time>-<uuid>.jsonl
    Gemini  ~/.gemini/tmp/<project hash>/chats/session-*.json

Design Decisions:
    - All functions return pathlib.Path objects
    - Roots come from AGENT_TAIL_<AGENT>_ROOT when set, else the CLI default
    - "Latest" means newest modification time; ties go to the path that
      sorts first, so results are deterministic
    - Partial ids resolve exact > prefix > substring, newest within a tier
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional


UUID_RE = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
CLAUDE_SESSION_PATTERN = re.compile(rf"^{UUID_RE}\.jsonl$", re.IGNORECASE)
CLAUDE_CHILD_PATTERN = re.compile(r"^agent-([0-9a-f]{7,40})\.jsonl$", re.IGNORECASE)
TRAILING_UUID_PATTERN = re.compile(rf"({UUID_RE})$", re.IGNORECASE)

CLAUDE_ROOT_ENV = "AGENT_TAIL_CLAUDE_ROOT"
CODEX_ROOT_ENV = "AGENT_TAIL_CODEX_ROOT"
GEMINI_ROOT_ENV = "AGENT_TAIL_GEMINI_ROOT"


@dataclass(frozen=True)
class SessionFile:
    """
    A located transcript.

    Attributes:
        path: Absolute path of the file.
        mtime: Modification time (epoch seconds).
        agent: "claude", "codex" or "gemini".
    """
    path: Path
    mtime: float
    agent: str


def _root_from_env(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else default


def claude_root() -> Path:
    """Return the Claude Code projects directory."""
    return _root_from_env(CLAUDE_ROOT_ENV, Path.home() / ".claude" / "projects")


def codex_root() -> Path:
    """Return the Codex CLI sessions directory."""
    return _root_from_env(CODEX_ROOT_ENV, Path.home() / ".codex" / "sessions")


def gemini_root() -> Path:
    """Return the Gemini CLI temp directory holding per-project chats."""
    return _root_from_env(GEMINI_ROOT_ENV, Path.home() / ".gemini" / "tmp")


def claude_children_dir(main_session: Path) -> Path:
    """
    Return the directory where a Claude session's subagents write.

    Example:
        >>> claude_children_dir(Path("/p/3f2a9c1e-....jsonl"))
        PosixPath('/p/3f2a9c1e-.../subagents')
    """
    main_session = Path(main_session)
    return main_session.parent / main_session.stem / "subagents"


def session_id_of(path: Path) -> str:
    """
    Return the id a user would type for a transcript.

    Claude: the uuid file name. Codex: the uuid at the end of the rollout
    name. Gemini: the name after "session-". Child transcripts: the hex id.
    """
    stem = Path(path).stem
    child = CLAUDE_CHILD_PATTERN.match(Path(path).name)
    if child:
        return child.group(1)
    trailing = TRAILING_UUID_PATTERN.search(stem)
    if trailing:
        return trailing.group(1)
    if stem.startswith("session-"):
        return stem[len("session-"):]
    return stem


# ------------------------------------------------------------
# Generic search
# ------------------------------------------------------------

def _stat_all(paths: Iterable[Path], agent: str) -> List[SessionFile]:
    found = []
    for path in paths:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            # Deleted between listing and stat
            continue
        found.append(SessionFile(path=path.resolve(), mtime=mtime, agent=agent))
    return found


def _newest_first(files: List[SessionFile]) -> List[SessionFile]:
    return sorted(files, key=lambda f: (-f.mtime, str(f.path)))


def candidates(
    root: Path,
    pattern: str,
    agent: str = "",
    project: Optional[str] = None,
    accept: Optional[Callable[[Path], bool]] = None,
) -> List[SessionFile]:
    """
    List transcripts under root matching a glob, newest first.

    Args:
        root: Directory to search.
        pattern: Glob relative to root (e.g. "*/*.jsonl").
        agent: Agent name recorded on the results.
        project: Case-insensitive substring the full path must contain.
        accept: Extra filter on each path.
    """
    root = Path(root)
    if not root.is_dir():
        return []
    needle = project.lower() if project else None
    paths = [
        p for p in root.glob(pattern)
        if p.is_file()
        and (accept is None or accept(p))
        and (needle is None or needle in str(p).lower())
    ]
    return _newest_first(_stat_all(paths, agent))


def find_latest(
    root: Path,
    pattern: str,
    project: Optional[str] = None,
    agent: str = "",
    accept: Optional[Callable[[Path], bool]] = None,
) -> Optional[SessionFile]:
    """Return the most recently modified match, or None."""
    found = candidates(root, pattern, agent=agent, project=project, accept=accept)
    return found[0] if found else None


def pick_partial(files: List[SessionFile], partial: str) -> Optional[SessionFile]:
    """
    Choose the file whose id best matches a partial id.

    Exact matches beat prefix matches, which beat substring matches.
    Within a tier the newest file wins.
    """
    needle = partial.lower()
    tiers: List[List[SessionFile]] = [[], [], []]
    for f in files:
        sid = session_id_of(f.path).lower()
        name = f.path.stem.lower()
        if needle in (sid, name):
            tiers[0].append(f)
        elif sid.startswith(needle) or name.startswith(needle):
            tiers[1].append(f)
        elif needle in sid or needle in name:
            tiers[2].append(f)
    for tier in tiers:
        if tier:
            return _newest_first(tier)[0]
    return None


def resolve_partial(
    root: Path,
    pattern: str,
    partial: str,
    agent: str = "",
    project: Optional[str] = None,
    accept: Optional[Callable[[Path], bool]] = None,
) -> Optional[SessionFile]:
    """Resolve a partial session id to a transcript under root."""
    return pick_partial(candidates(root, pattern, agent, project, accept), partial)


# ------------------------------------------------------------
# Per-agent layouts
# ------------------------------------------------------------

def _is_claude_main(path: Path) -> bool:
    return CLAUDE_SESSION_PATTERN.match(path.name) is not None


def _is_claude_child(path: Path) -> bool:
    return CLAUDE_CHILD_PATTERN.match(path.name) is not None


def find_claude_session(
    root: Optional[Path] = None,
    project: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Optional[SessionFile]:
    """Latest Claude main session, or the one matching session_id."""
    root = root or claude_root()
    if session_id:
        return resolve_partial(root, "*/*.jsonl", session_id, "claude", project, _is_claude_main)
    return find_latest(root, "*/*.jsonl", project, "claude", _is_claude_main)


def find_claude_child(
    root: Optional[Path] = None,
    project: Optional[str] = None,
    child_id: Optional[str] = None,
) -> Optional[SessionFile]:
    """Latest Claude subagent transcript, or the one matching child_id."""
    root = root or claude_root()
    pattern = "*/*/subagents/agent-*.jsonl"
    if child_id:
        return resolve_partial(root, pattern, child_id, "claude", project, _is_claude_child)
    return find_latest(root, pattern, project, "claude", _is_claude_child)


def find_codex_session(
    root: Optional[Path] = None,
    project: Optional[str] = None,
    session_id: Optional[str] = None,
    index=None,
) -> Optional[SessionFile]:
    """
    Latest Codex rollout, or the one matching session_id.

    With an index (SessionIndexCache), a project filter also matches the
    session's working directory, not just its path.
    """
    root = root or codex_root()
    files = candidates(root, "*/*/*/rollout-*.jsonl", "codex")

    if project:
        needle = project.lower()
        by_path = [f for f in files if needle in str(f.path).lower()]
        by_cwd = []
        if index is not None:
            by_cwd = _stat_all((Path(s.path) for s in index.sessions_matching(project)), "codex")
        seen = set()
        files = []
        for f in by_cwd + by_path:
            if f.path not in seen:
                seen.add(f.path)
                files.append(f)
        files = _newest_first(files)

    if session_id:
        return pick_partial(files, session_id)
    return files[0] if files else None


def find_gemini_session(
    root: Optional[Path] = None,
    project: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Optional[SessionFile]:
    """Latest Gemini chat session, or the one matching session_id."""
    root = root or gemini_root()
    if session_id:
        return resolve_partial(root, "*/chats/session-*.json", session_id, "gemini", project)
    return find_latest(root, "*/chats/session-*.json", project, "gemini")


def session_activity_time(main_session: Path, mtime: float) -> float:
    """Newest mtime among a Claude session and its subagent transcripts."""
    latest = mtime
    children = claude_children_dir(main_session)
    if children.is_dir():
        for child in _stat_all(children.glob("agent-*.jsonl"), "claude"):
            latest = max(latest, child.mtime)
    return latest


def find_latest_main_session(project_dir: Path) -> Optional[SessionFile]:
    """
    Return the Claude session in one project directory with the newest
    activity, counting writes by its subagents as activity.
    """
    project_dir = Path(project_dir)
    if not project_dir.is_dir():
        return None
    files = _stat_all((p for p in project_dir.glob("*.jsonl") if _is_claude_main(p)), "claude")
    if not files:
        return None
    files.sort(key=lambda f: (-session_activity_time(f.path, f.mtime), str(f.path)))
    return files[0]
