"""
Notification channel between core components and the outside world.

Core components never print. They report through a Notifier, which
records every message in the run log and forwards the ones worth
showing to whatever display the CLI wired in.
"""

from typing import Callable, Optional

from ..utils.runlog import RunLogger


class Notifier:
    """
    Route core diagnostics to a run log and a display writer.

    Attributes:
        source: Source name recorded in the run log.
        verbose: When True, debug messages also reach the display.
        quiet: When True, only errors reach the display.

    Example:
        >>> notifier = Notifier(write=print, source="discovery")
        >>> notifier.warn("New subagent detected: a0627b6")
        New subagent detected: a0627b6
    """

    def __init__(
        self,
        write: Optional[Callable[[str], None]] = None,
        logger: Optional[RunLogger] = None,
        source: str = "core",
        verbose: bool = False,
        quiet: bool = False,
    ) -> None:
        self._write = write
        self._logger = logger
        self.source = source
        self.verbose = verbose
        self.quiet = quiet

    def _emit(self, level: str, message: str, show: bool) -> None:
        if self._logger is not None:
            self._logger.log(self.source, level, message)
        if show and self._write is not None:
            self._write(message)

    def info(self, message: str) -> None:
        self._emit("INFO", message, show=not self.quiet)

    def warn(self, message: str) -> None:
        self._emit("WARN", message, show=not self.quiet)

    def error(self, message: str) -> None:
        self._emit("ERROR", message, show=True)

    def debug(self, message: str) -> None:
        self._emit("DEBUG", message, show=self.verbose and not self.quiet)


class NullNotifier(Notifier):
    """Notifier that discards everything. Default for library use."""

    def __init__(self) -> None:
        super().__init__(write=None, logger=None)
