from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from agenttail.core import tailer as tailer_module
from agenttail.core.errors import SourceUnavailableError, WatchError
from agenttail.core.model import TailMode
from agenttail.core.tailer import FileTailer, select_initial, split_records


def append(path: Path, text: str) -> None:
    with path.open("a", encoding="utf-8") as f:
        f.write(text)


def start_tailer(path: Path, recorder, **kwargs) -> FileTailer:
    tailer = FileTailer()
    kwargs.setdefault("follow", False)
    tailer.start(str(path), on_line=recorder, **kwargs)
    return tailer


def test_split_records_skips_blank_lines_and_holds_partial_line() -> None:
    records, consumed = split_records(b'{"a": 1}\n\n{"b": 2}\r\n{"c"')

    assert records == ['{"a": 1}', '{"b": 2}']
    assert consumed == len(b'{"a": 1}\n\n{"b": 2}\r\n')


def test_split_records_without_newline_consumes_nothing() -> None:
    assert split_records(b'{"partial": ') == ([], 0)


def test_select_initial_counts() -> None:
    records = ["a", "b", "c"]

    assert select_initial(records, None) == records
    assert select_initial(records, -1) == records
    assert select_initial(records, 0) == []
    assert select_initial(records, 2) == ["b", "c"]
    assert select_initial(records, 10) == records


def test_initial_read_emits_existing_records(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("one\ntwo\n")

    tailer = start_tailer(path, recorder)

    assert recorder.snapshot() == ["one", "two"]
    assert tailer.cursor == 2
    tailer.stop()


def test_initial_lines_limits_start_up_output_only(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\nb\nc\n")

    tailer = start_tailer(path, recorder, initial_lines=1)
    append(path, "d\n")
    tailer.refresh()

    assert recorder.snapshot() == ["c", "d"]
    tailer.stop()


def test_appended_lines_are_emitted_once(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("one\n")
    tailer = start_tailer(path, recorder)

    append(path, "two\nthree\n")
    tailer.refresh()
    tailer.refresh()

    assert recorder.snapshot() == ["one", "two", "three"]
    tailer.stop()


def test_partial_line_waits_for_newline(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("")
    tailer = start_tailer(path, recorder)

    append(path, '{"x": ')
    tailer.refresh()
    assert recorder.snapshot() == []

    append(path, "1}\n")
    tailer.refresh()
    assert recorder.snapshot() == ['{"x": 1}']
    tailer.stop()


def test_truncation_rereads_from_start(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("1\n2\n3\n")
    tailer = start_tailer(path, recorder, initial_lines=0)

    path.write_text("new\n")
    tailer.refresh()

    assert recorder.snapshot() == ["new"]
    assert tailer.cursor == 1
    tailer.stop()


def test_in_place_rewrite_rereads_from_start(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\nb\n")
    tailer = start_tailer(path, recorder)

    path.write_text("x\ny\nz\n")
    tailer.refresh()

    assert recorder.snapshot() == ["a", "b", "x", "y", "z"]
    tailer.stop()


def test_atomic_replace_rereads_from_start(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\nb\n")
    tailer = start_tailer(path, recorder)

    replacement = tmp_path / "s.jsonl.tmp"
    replacement.write_text("a\nb\nc\n")
    os.replace(replacement, path)
    tailer.refresh()

    assert recorder.snapshot() == ["a", "b", "a", "b", "c"]
    tailer.stop()


def test_missing_file_while_refreshing_is_retried_later(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\n")
    errors = []
    tailer = start_tailer(path, recorder, on_error=errors.append)

    path.unlink()
    tailer.refresh()
    path.write_text("b\n")
    tailer.refresh()

    assert errors == []
    assert recorder.snapshot() == ["a", "b"]
    tailer.stop()


def test_missing_file_at_start_is_reported(tmp_path: Path, recorder) -> None:
    with pytest.raises(SourceUnavailableError) as info:
        FileTailer().start(str(tmp_path / "absent.jsonl"), on_line=recorder, follow=False)

    assert info.value.path.endswith("absent.jsonl")


def test_start_twice_is_rejected(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("")
    tailer = start_tailer(path, recorder)

    with pytest.raises(RuntimeError):
        tailer.start(str(path), on_line=recorder, follow=False)
    tailer.stop()


def test_failing_callback_does_not_stop_later_records(tmp_path: Path, notifier, messages) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("bad\ngood\n")
    seen = []
    errors = []

    def on_line(record: str) -> None:
        if record == "bad":
            raise ValueError("boom")
        seen.append(record)

    tailer = FileTailer(notifier=notifier)
    tailer.start(str(path), on_line=on_line, on_error=errors.append, follow=False)

    assert seen == ["good"]
    assert [str(e) for e in errors] == ["boom"]
    assert any("boom" in m for m in messages.snapshot())
    tailer.stop()


def test_no_records_after_stop(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\n")
    tailer = start_tailer(path, recorder)

    tailer.stop()
    tailer.stop()
    append(path, "b\n")
    tailer.refresh()

    assert recorder.snapshot() == ["a"]
    assert not tailer.active


def test_refresh_requests_during_a_read_coalesce(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\n")
    tailer = start_tailer(path, recorder)

    entered = threading.Event()
    release = threading.Event()
    calls = []

    def slow_read() -> None:
        calls.append(1)
        if len(calls) == 1:
            entered.set()
            release.wait(5)

    tailer._read_once = slow_read
    worker = threading.Thread(target=tailer.refresh)
    worker.start()
    assert entered.wait(5)

    tailer.refresh()
    tailer.refresh()
    tailer.refresh()
    assert len(calls) == 1

    release.set()
    worker.join(5)
    assert len(calls) == 2
    tailer.stop()


def test_document_mode_emits_whole_file_on_change(tmp_path: Path, recorder) -> None:
    path = tmp_path / "session-1.json"
    path.write_text('{"messages": []}')
    tailer = start_tailer(path, recorder, mode=TailMode.DOCUMENT)

    tailer.refresh()
    assert recorder.snapshot() == ['{"messages": []}']

    path.write_text('{"messages": [{"id": "m1"}]}')
    tailer.refresh()
    assert recorder.snapshot()[-1] == '{"messages": [{"id": "m1"}]}'
    assert len(recorder.snapshot()) == 2
    tailer.stop()


def test_follow_picks_up_appends(tmp_path: Path, recorder, wait_for) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("a\n")
    tailer = FileTailer()
    tailer.start(str(path), on_line=recorder, follow=True, poll_interval=0.05)

    append(path, "b\n")

    assert wait_for(lambda: recorder.snapshot() == ["a", "b"])
    tailer.stop()


class UnwatchableObserver:
    daemon = False

    def schedule(self, handler, path, recursive=False):
        raise OSError(28, "inotify watch limit reached")


def test_unwatchable_directory_is_reported_and_polled(tmp_path: Path, recorder, wait_for, monkeypatch) -> None:
    monkeypatch.setattr(tailer_module, "Observer", UnwatchableObserver)
    path = tmp_path / "s.jsonl"
    path.write_text("a\n")
    errors = []
    tailer = FileTailer()
    tailer.start(str(path), on_line=recorder, on_error=errors.append, follow=True, poll_interval=0.05)

    assert len(errors) == 1
    assert isinstance(errors[0], WatchError)
    assert str(tmp_path) in str(errors[0])

    append(path, "b\n")
    assert wait_for(lambda: recorder.snapshot() == ["a", "b"])
    tailer.stop()


def test_concurrent_writer_and_refreshers_lose_and_repeat_nothing(tmp_path: Path, recorder) -> None:
    path = tmp_path / "s.jsonl"
    path.write_text("")
    tailer = FileTailer()
    tailer.start(str(path), on_line=recorder, follow=True, poll_interval=0.02)
    expected = [f'{{"n": {i}}}' for i in range(300)]
    done = threading.Event()

    def writer() -> None:
        for line in expected:
            # Split each line so readers regularly see a partial record
            append(path, line[:4])
            append(path, line[4:] + "\n")
        done.set()

    def hammer() -> None:
        while not done.is_set():
            tailer.refresh()

    threads = [threading.Thread(target=writer)] + [threading.Thread(target=hammer) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10)
    tailer.refresh()

    assert recorder.snapshot() == expected
    tailer.stop()
