"""
Event merging for time-ordered display of several sources.

This module provides a buffered event merger that collects events from
multiple tailed sessions and emits them in timestamp order.

Purpose:
    Each source emits its events in file order, but sources are read one
    after the other. When a consumer wants one combined timeline (for
    example the start-up history of the main session and its subagents
    interleaved), events are collected first and released sorted by their
    own timestamps.

Design Decisions:
    - Uses a min-heap keyed by (timestamp, arrival sequence), so events with
      equal timestamps keep their arrival order
    - Events without a usable timestamp sort by wall-clock arrival time
    - The consumer decides when to release; flush() hands back everything
"""

import heapq
import time
from datetime import datetime
from typing import List, Optional

from .model import Event


def timestamp_key(timestamp: str) -> Optional[float]:
    """
    Convert an ISO 8601 timestamp to epoch seconds.

    Returns None for empty or unparseable timestamps.

    Example:
        >>> timestamp_key("2026-01-15T12:00:00.000Z")
        1768478400.0
    """
    if not timestamp:
        return None
    text = timestamp.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).timestamp()
    except ValueError:
        return None


class EventMerger:
    """
    Buffered event merger that emits events in timestamp order.

    Attributes:
        buffer: A min-heap of (sort_key, seq, event) tuples.

    Example:
        >>> merger = EventMerger()
        >>> merger.ingest(main_event)
        >>> merger.ingest(child_event)
        >>> for event in merger.flush():
        ...     print(event.source_label, event.text)
    """

    def __init__(self) -> None:
        self.buffer = []
        # Tie-breaker so heapq never compares Event objects
        self._seq = 0

    def __len__(self) -> int:
        return len(self.buffer)

    def ingest(self, event: Event) -> None:
        """Add an event to the merge buffer."""
        key = timestamp_key(event.timestamp)
        if key is None:
            key = time.time()
        self._seq += 1
        heapq.heappush(self.buffer, (key, self._seq, event))

    def flush(self) -> List[Event]:
        """Return every buffered event in order and empty the buffer."""
        out = []
        while self.buffer:
            out.append(heapq.heappop(self.buffer)[2])
        return out
