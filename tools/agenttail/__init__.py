"""
agenttail - Real-time viewer for AI agent session logs.

Claude Code, Codex CLI and Gemini CLI write their conversations to
transcript files while they work. agenttail follows those files and
prints what the agent is doing as it happens, including the subagents
a Claude session spawns along the way.

Package Structure:
    - cli.py: Command-line interface and entry point
    - config.py: Environment settings and .env loading
    - core/: Tailing engine, multiplexer, session registry, discovery
    - decoders/: Per-agent record decoders
    - tui/: Formatters, displays and the curses viewer
    - utils/: Session locations, text helpers, run logging, index cache

Usage:
    Run as a module: python -m agenttail <agent>

Example:
    python -m agenttail claude --with-subagents
"""

__version__ = "0.1.0"
