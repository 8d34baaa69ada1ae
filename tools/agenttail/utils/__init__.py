"""
Utility modules for agenttail.

Modules:
    - paths: Where each agent CLI keeps its transcripts, and lookup
    - index_cache: Persistent cwd -> Codex session index
    - text: Truncation and one-line summaries of tool calls
    - runlog: Per-run append-only log files
"""
