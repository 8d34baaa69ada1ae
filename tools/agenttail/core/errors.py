"""
Exception types raised by the agenttail core.

Only failures the caller must decide about are raised. Transient I/O
problems, malformed records and rejected child ids are handled where
they occur and never reach this module's types.
"""


class AgentTailError(Exception):
    """Base class for all agenttail errors."""


class SourceUnavailableError(AgentTailError):
    """The initial source file could not be opened."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        message = f"Cannot open source file: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class WatchError(AgentTailError):
    """A directory could not be watched at all."""


class InvalidChildIdError(AgentTailError, ValueError):
    """A child id failed validation and cannot be turned into a path."""


class ConfigError(AgentTailError, ValueError):
    """An environment setting has an invalid value."""


class UsageError(AgentTailError, ValueError):
    """Command-line options that cannot be used together."""
