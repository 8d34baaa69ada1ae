"""
Stateful record decoding.

Purpose:
    One transcript record can hold several displayable things: a Claude
    assistant message mixes narrative text with tool calls, and a Gemini
    session file holds every message of the conversation. Decoders turn a
    record into events one at a time so the caller can interleave them
    with other sources in emission order.

Protocol:
    Call decode(record) repeatedly with the same record until it returns
    None. Each call returns the next event of that record.

        >>> decoder = ClaudeDecoder()
        >>> for event in iter_events(decoder, line):
        ...     print(event.text)

Design Decisions:
    - In-progress decoding lives in one explicit, nullable DecodeState
    - A record equal to the last fully exhausted one returns None at once,
      so a caller that does not track exhaustion cannot loop forever
    - A different record arriving mid-decode supersedes the old state
    - Malformed records decode to None; they never raise
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from ..core.model import Event


# Hard cap on events per record for iter_events; far above any real record
MAX_EVENTS_PER_RECORD = 100_000


@dataclass
class DecodeState:
    """
    Decode progress through one compound record.

    Attributes:
        record: The raw record being decoded.
        payload: Its parsed JSON.
        parts: Sub-parts still to be turned into events.
        index: Position of the next part.
        sub_index: Position inside the current part (e.g. its tool calls).
        flags: Per-record switches such as "text already emitted".
    """
    record: str
    payload: Any = None
    parts: List[Any] = field(default_factory=list)
    index: int = 0
    sub_index: int = 0
    flags: Dict[str, Any] = field(default_factory=dict)


class RecordDecoder:
    """
    Base class for per-agent decoders.

    Subclasses implement decode_payload() for new records and, if they
    produce compound records, next_part() to walk a DecodeState.

    Attributes:
        verbose: Disable truncation of long text.
        state: Progress through the current compound record, or None.
        last_exhausted: The last record fully decoded.
    """

    agent = ""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose
        self.state: Optional[DecodeState] = None
        self.last_exhausted: Optional[str] = None

    def decode(self, record: str) -> Optional[Event]:
        """Return the next event of this record, or None when exhausted."""
        if self.state is not None:
            if self.state.record == record:
                event = self.next_part(self.state)
                if event is None:
                    self._exhaust(record)
                return event
            # A new record supersedes whatever was left of the old one
            self.state = None

        if not record.strip():
            return None
        if record == self.last_exhausted:
            return None

        try:
            payload = json.loads(record)
        except ValueError:
            self.last_exhausted = record
            return None

        event = self.decode_payload(record, payload)
        if self.state is None:
            # Simple record: whatever it produced was all of it
            self.last_exhausted = record
        elif event is None:
            self._exhaust(record)
        return event

    def decode_payload(self, record: str, payload: Any) -> Optional[Event]:
        """Decode a record seen for the first time."""
        raise NotImplementedError

    def next_part(self, state: DecodeState) -> Optional[Event]:
        """Return the next event of a compound record, or None when done."""
        return None

    def begin(self, record: str, payload: Any, parts: List[Any], **flags: Any) -> Optional[Event]:
        """Start walking a compound record and return its first event."""
        self.state = DecodeState(record=record, payload=payload, parts=parts, flags=dict(flags))
        event = self.next_part(self.state)
        if event is None:
            self._exhaust(record)
        return event

    def reset(self) -> None:
        """Forget all progress, e.g. after the source was truncated."""
        self.state = None
        self.last_exhausted = None

    def _exhaust(self, record: str) -> None:
        self.state = None
        self.last_exhausted = record


def iter_events(decoder: RecordDecoder, record: str) -> Iterator[Event]:
    """
    Yield every event of one record.

    Bounded by MAX_EVENTS_PER_RECORD so a faulty decoder cannot hang the
    tail thread.
    """
    for _ in range(MAX_EVENTS_PER_RECORD):
        event = decoder.decode(record)
        if event is None:
            return
        yield event
