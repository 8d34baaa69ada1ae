"""
Tailing and multiplexing engine.

Modules:
    - tailer: FileTailer, exactly-once tailing of one file
    - multiplexer: SourceMultiplexer, many tailers into one labelled stream
    - sessions: SessionRegistry, per-source buffers and the active session
    - discovery: ChildSourceDiscovery, attaches child sessions as they appear
    - pipeline: record -> events -> formatted lines
    - merger: EventMerger, timestamp ordering across sources
    - follow: FollowLatestController, switches to a newer main session
    - model, errors, notify: shared types, exceptions and diagnostics

Architecture:
    Each tailer runs its own poll thread and watchdog observer. Records
    flow through the multiplexer into a line handler, which decodes and
    formats them and hands the text to the registry or a display.
"""
