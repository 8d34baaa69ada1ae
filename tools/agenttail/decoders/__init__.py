"""
Per-agent record decoders.

Each supported agent CLI writes its transcript in its own format. A decoder
turns one raw record of that format into displayable Events.
"""

from typing import Dict, Type

from .base import DecodeState, RecordDecoder, iter_events
from .claude import ClaudeDecoder
from .codex import CodexDecoder
from .gemini import GeminiDecoder


DECODERS: Dict[str, Type[RecordDecoder]] = {
    "claude": ClaudeDecoder,
    "codex": CodexDecoder,
    "gemini": GeminiDecoder,
}


def make_decoder(agent: str, verbose: bool = False) -> RecordDecoder:
    """Create a fresh decoder for an agent type ("claude", "codex", "gemini")."""
    try:
        cls = DECODERS[agent]
    except KeyError:
        raise ValueError(f"Unknown agent type: {agent}") from None
    return cls(verbose=verbose)


__all__ = [
    "DECODERS",
    "ClaudeDecoder",
    "CodexDecoder",
    "DecodeState",
    "GeminiDecoder",
    "RecordDecoder",
    "iter_events",
    "make_decoder",
]
