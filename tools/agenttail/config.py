"""
Environment configuration for agenttail.

Settings come from AGENT_TAIL_* environment variables, optionally seeded
from a .env file. Command-line flags override them.

Variables:
    AGENT_TAIL_CLAUDE_ROOT       Claude projects directory
    AGENT_TAIL_CODEX_ROOT        Codex sessions directory
    AGENT_TAIL_GEMINI_ROOT       Gemini tmp directory
    AGENT_TAIL_LOG_ROOT          Where run logs are written
    AGENT_TAIL_POLL_INTERVAL_MS  Tail poll interval, 100-60000 (default 500)
    AGENT_TAIL_BUFFER_SIZE       Lines kept per inactive session (default 1000)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .core.errors import ConfigError
from .utils import paths


MIN_POLL_INTERVAL_MS = 100
MAX_POLL_INTERVAL_MS = 60000
DEFAULT_POLL_INTERVAL_MS = 500
DEFAULT_BUFFER_SIZE = 1000


def load_dotenv(env_path: Optional[Path] = None) -> None:
    """
    Load a .env file into os.environ if present.

    By default the file is looked up in the current working directory.
    Existing environment variables take priority over the file. Lines
    may carry an "export " prefix and quoted values.
    """
    env_path = Path(env_path) if env_path else Path.cwd() / ".env"

    # Optional file
    if not env_path.is_file():
        return

    with env_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            if key.startswith("export "):
                key = key[len("export "):].strip()
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]
            os.environ.setdefault(key, value)


@dataclass(frozen=True)
class Settings:
    """
    Resolved configuration.

    Attributes:
        claude_root: Claude projects directory.
        codex_root: Codex sessions directory.
        gemini_root: Gemini tmp directory.
        log_root: Directory holding runs/<run_id>.log.
        poll_interval_ms: Stat poll interval of each tailer.
        buffer_size: Lines held per inactive session.
    """
    claude_root: Path
    codex_root: Path
    gemini_root: Path
    log_root: Path
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    buffer_size: int = DEFAULT_BUFFER_SIZE

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0


def _int_setting(environ: Mapping[str, str], name: str, default: int, low: int, high: Optional[int]) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < low or (high is not None and value > high):
        bounds = f"{low}-{high}" if high is not None else f">= {low}"
        raise ConfigError(f"{name} must be {bounds}, got {value}")
    return value


def validate_poll_interval_ms(value: int) -> int:
    """Check a poll interval against the allowed range and return it."""
    if not MIN_POLL_INTERVAL_MS <= value <= MAX_POLL_INTERVAL_MS:
        raise ConfigError(
            f"Poll interval must be between {MIN_POLL_INTERVAL_MS} and "
            f"{MAX_POLL_INTERVAL_MS} ms, got {value}"
        )
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigError: A numeric variable is not an integer or out of range.
    """
    if environ is None:
        environ = os.environ

    def root(name: str, default: Path) -> Path:
        value = environ.get(name)
        return Path(value).expanduser() if value else default

    home = Path.home()
    return Settings(
        claude_root=root(paths.CLAUDE_ROOT_ENV, home / ".claude" / "projects"),
        codex_root=root(paths.CODEX_ROOT_ENV, home / ".codex" / "sessions"),
        gemini_root=root(paths.GEMINI_ROOT_ENV, home / ".gemini" / "tmp"),
        log_root=root("AGENT_TAIL_LOG_ROOT", home / ".agent-tail" / "logs"),
        poll_interval_ms=_int_setting(
            environ,
            "AGENT_TAIL_POLL_INTERVAL_MS",
            DEFAULT_POLL_INTERVAL_MS,
            MIN_POLL_INTERVAL_MS,
            MAX_POLL_INTERVAL_MS,
        ),
        buffer_size=_int_setting(environ, "AGENT_TAIL_BUFFER_SIZE", DEFAULT_BUFFER_SIZE, 1, None),
    )
