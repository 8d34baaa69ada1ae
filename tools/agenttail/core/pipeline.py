"""
Glue between tailed records and displayed lines.

Every watch mode runs the same path for each record read:

    (label, record) -> decoder for that label -> Events -> formatter -> emit

and, for the main session of a Claude run, forwards discovery hints to
ChildSourceDiscovery. This module builds that path.
"""

import os
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ..decoders import RecordDecoder, iter_events, make_decoder
from .discovery import child_path_for, extract_child_ids
from .merger import EventMerger
from .model import MAIN_LABEL, Event, WatchedSource, child_label


EmitCallback = Callable[[str, str], None]


class StartupOrdering:
    """
    Hold events read during start-up and release them in time order.

    Starting a multi-source watch reads the main session and every existing
    child file one after the other, so their history would print file by
    file. Events accepted before release() are merged by timestamp instead.
    Afterwards accept() declines everything and events go straight out.

    Example:
        >>> ordering = StartupOrdering(formatter, emit)
        >>> handler = make_line_handler("claude", formatter, emit, ordering=ordering)
        >>> mux.start(sources, handler)
        >>> ordering.release()
    """

    def __init__(self, formatter, emit: EmitCallback) -> None:
        self.formatter = formatter
        self.emit = emit
        self.merger = EventMerger()
        self._holding = True
        # Held while releasing, so a live event cannot overtake history
        self._lock = threading.Lock()

    def accept(self, event: Event) -> bool:
        """Take the event if still holding. False means: emit it yourself."""
        with self._lock:
            if not self._holding:
                return False
            self.merger.ingest(event)
            return True

    def release(self) -> None:
        """Emit every held event in timestamp order and stop holding."""
        with self._lock:
            self._holding = False
            for event in self.merger.flush():
                text = self.formatter.format(event)
                if text:
                    self.emit(event.source_label or "", text)


def make_line_handler(
    agent: str,
    formatter,
    emit: EmitCallback,
    discovery=None,
    verbose: bool = False,
    primary_label: str = MAIN_LABEL,
    decoders: Optional[Dict[str, RecordDecoder]] = None,
    ordering: Optional[StartupOrdering] = None,
) -> Callable[[str, str], None]:
    """
    Build the on_line callback handed to the multiplexer.

    Args:
        agent: Agent type used to create decoders.
        formatter: Object with format(event) -> str.
        emit: Called with (label, formatted text) for every event.
        discovery: ChildSourceDiscovery to notify, or None.
        verbose: Passed to new decoders.
        primary_label: Only this label's events drive discovery.
        decoders: Decoder per label; filled on demand. Pass a dict to
                  inspect or share decoder state.
        ordering: Start-up ordering stage that may take events first.

    Returns:
        Callable taking (label, record).

    Note:
        Each event is emitted before any discovery trigger it carries, so
        the "Task" call line prints ahead of the child it announces.
    """
    decoders = decoders if decoders is not None else {}

    def on_line(label: str, record: str) -> None:
        decoder = decoders.get(label)
        if decoder is None:
            decoder = decoders.setdefault(label, make_decoder(agent, verbose=verbose))

        for event in iter_events(decoder, record):
            event.source_label = label
            if ordering is None or not ordering.accept(event):
                text = formatter.format(event)
                if text:
                    emit(label, text)

            if discovery is None or label != primary_label:
                continue
            if event.triggers_discovery:
                discovery.handle_early_trigger()
            if event.reported_child_id:
                discovery.handle_inline_trigger(event.reported_child_id)

    return on_line


def _birth_time(path: str) -> float:
    st = os.stat(path)
    # st_birthtime is missing on most Linux filesystems
    return getattr(st, "st_birthtime", st.st_mtime)


def existing_child_sources(session_path: str, directory: str) -> List[Tuple[str, WatchedSource]]:
    """
    Return child sessions the main session already reported, oldest first.

    Only children whose transcript exists are returned. Used at start-up,
    before discovery takes over.

    Returns:
        List of (child_id, WatchedSource).
    """
    found = []
    for child_id in extract_child_ids(session_path):
        path = child_path_for(directory, child_id)
        try:
            created = _birth_time(path)
        except OSError:
            continue
        found.append((created, child_id, WatchedSource(path, child_label(child_id))))

    found.sort(key=lambda item: (item[0], item[1]))
    return [(child_id, source) for _created, child_id, source in found]
