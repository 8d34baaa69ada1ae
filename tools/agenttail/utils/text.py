"""
Text helpers for turning transcript content into one-line summaries.

Agent transcripts carry long prompts, multi-page tool output and nested
content blocks. These helpers shorten and flatten them so a tail stays
readable; verbose mode turns every truncation off.
"""

import json
from typing import Any, Dict, Optional


def truncate(text: str, verbose: bool = False, head: int = 100, tail: int = 100) -> str:
    """
    Keep the start and end of a long string, joined by "...".

    Strings within head + tail + 10 characters are returned unchanged.

    Example:
        >>> truncate("a" * 300, head=5, tail=5)
        'aaaaa...aaaaa'
    """
    if verbose:
        return text
    if len(text) <= head + tail + 10:
        return text
    return f"{text[:head]}...{text[-tail:]}"


def truncate_by_lines(
    text: str, verbose: bool = False, head_lines: int = 10, tail_lines: int = 10
) -> str:
    """
    Keep the first and last lines of a long block of text.

    The dropped middle is replaced by a "... (N lines omitted) ..." marker.
    Blocks within head_lines + tail_lines + 2 lines are returned unchanged.
    """
    if verbose:
        return text
    lines = text.split("\n")
    if len(lines) <= head_lines + tail_lines + 2:
        return text
    omitted = len(lines) - head_lines - tail_lines
    return "\n".join(
        lines[:head_lines]
        + [f"... ({omitted} lines omitted) ..."]
        + lines[-tail_lines:]
    )


def content_to_string(content: Any) -> str:
    """
    Flatten a message content field into plain text.

    Handles plain strings, lists of content blocks ({"type": "text",
    "text": ...}, {"type": "tool_result", "content": ...}) and single
    block objects. Blocks without text are shown as "[type]".
    """
    if isinstance(content, str):
        return content
    if content is None:
        return ""

    if isinstance(content, list):
        pieces = []
        for item in content:
            if isinstance(item, str):
                piece = item
            elif isinstance(item, dict):
                if isinstance(item.get("text"), str):
                    piece = item["text"]
                elif isinstance(item.get("content"), str):
                    piece = item["content"]
                elif "type" in item:
                    piece = f"[{item['type']}]"
                else:
                    piece = ""
            else:
                piece = ""
            if piece:
                pieces.append(piece)
        return " ".join(pieces)

    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        if isinstance(content.get("content"), str):
            return content["content"]
        return json.dumps(content, ensure_ascii=False)

    return str(content)


def format_multiline(content: str, indent: str = "    ") -> str:
    """
    Lay out content for display after a kind label.

    A single line gets a leading space. Multiple lines start on a new line
    and are indented.

    Example:
        >>> format_multiline("one")
        ' one'
        >>> format_multiline("one\\ntwo")
        '\\n    one\\n    two'
    """
    if "\n" not in content:
        return f" {content}"
    return "\n" + "\n".join(f"{indent}{line}" for line in content.split("\n"))


# Input keys that name a file, by tool
_FILE_TOOLS = {
    "Read", "Edit", "Write",
    "read_file", "edit_file", "write_file",
}


def summarize_tool_call(
    name: str, args: Optional[Dict[str, Any]] = None, verbose: bool = False
) -> str:
    """
    Produce a one-line summary of a tool call showing its key argument.

    Args:
        name: Tool name as reported by the agent.
        args: Tool input arguments, if any.
        verbose: Disable truncation of long arguments.

    Returns:
        str: e.g. '[TOOL: Grep] "TODO" in src/' or '$ ls -la'.
    """
    if args is None:
        return f"[TOOL: {name}]"

    if name == "Task":
        prompt = args.get("prompt")
        if prompt:
            return f"[TOOL: Task] {truncate(prompt, verbose, head=50, tail=50)}"
        return "[TOOL: Task]"

    if name in ("Grep", "Glob"):
        path = args.get("path")
        where = f" in {path}" if path else ""
        return f'[TOOL: {name}] "{args.get("pattern") or ""}"{where}'

    if name == "Bash":
        command = args.get("command")
        if command:
            return f"[TOOL: Bash] {truncate(command, verbose, head=80, tail=40)}"
        return "[TOOL: Bash]"

    if name in _FILE_TOOLS:
        return f"[TOOL: {name}] {args.get('file_path') or ''}"

    if name == "LSP":
        return f"[TOOL: LSP] {args.get('operation') or ''} {args.get('filePath') or ''}"

    if name == "WebFetch":
        return f"[TOOL: WebFetch] {args.get('url') or ''}"

    if name == "WebSearch":
        return f'[TOOL: WebSearch] "{args.get("query") or ""}"'

    if name == "TodoWrite":
        return "[TOOL: TodoWrite]"

    if name in ("shell", "shell_command"):
        command = args.get("command")
        # Codex passes ["/bin/zsh", "-lc", "<command>"] or a plain string
        if isinstance(command, list):
            command = " ".join(str(part) for part in command[2:])
        if command:
            return f"$ {truncate(command, verbose, head=80, tail=40)}"
        return "[TOOL: shell]"

    # Anything else: show the first non-empty string argument
    for value in args.values():
        if isinstance(value, str) and value:
            return f"[TOOL: {name}] {truncate(value, verbose, head=40, tail=20)}"
    return f"[TOOL: {name}]"


def tool_category(name: str) -> str:
    """Group a tool name into shell/file/search/web/task/other for labels."""
    if name in ("Bash", "shell", "shell_command", "run_shell_command"):
        return "shell"
    if name in _FILE_TOOLS or name in ("NotebookEdit", "replace", "list_directory"):
        return "file"
    if name in ("Grep", "Glob", "LSP", "search_file_content", "glob"):
        return "search"
    if name in ("WebFetch", "WebSearch", "web_fetch", "google_web_search"):
        return "web"
    if name in ("Task", "TodoWrite"):
        return "task"
    return "other"
