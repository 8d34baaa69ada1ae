from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest

from agenttail.core import discovery as discovery_module
from agenttail.core.discovery import (
    ChildSourceDiscovery,
    RetryPolicy,
    attach_with_retry,
    child_path_for,
    extract_child_ids,
    is_valid_child_id,
    scan_for_new_children,
)
from agenttail.core.errors import InvalidChildIdError, SourceUnavailableError
from agenttail.core.sessions import SessionRegistry


class FakeMultiplexer:
    def __init__(self, fail: bool = False) -> None:
        self.added = []
        self.fail = fail
        self._lock = threading.Lock()

    def add_source(self, source) -> bool:
        if self.fail:
            raise SourceUnavailableError(source.path, "gone")
        with self._lock:
            if any(s.path == source.path for s in self.added):
                return False
            self.added.append(source)
        return True

    def labels(self):
        with self._lock:
            return [s.label for s in self.added]


def make_discovery(directory: Path, mux=None, **kwargs) -> ChildSourceDiscovery:
    kwargs.setdefault("known_ids", [])
    return ChildSourceDiscovery(
        directory=str(directory),
        multiplexer=mux if mux is not None else FakeMultiplexer(),
        **kwargs,
    )


@pytest.mark.parametrize("child_id", ["a0627b6", "ABCDEF1", "0" * 40])
def test_valid_child_ids(child_id: str) -> None:
    assert is_valid_child_id(child_id)


@pytest.mark.parametrize("child_id", ["../etc", "abc", "a" * 41, "a0627g6", "", None, 1234567])
def test_invalid_child_ids(child_id) -> None:
    assert not is_valid_child_id(child_id)


def test_child_path_for_rejects_traversal(tmp_path: Path) -> None:
    assert child_path_for(str(tmp_path), "a0627b6") == str(tmp_path / "agent-a0627b6.jsonl")
    with pytest.raises(InvalidChildIdError):
        child_path_for(str(tmp_path), "../../etc/passwd")


def test_scan_for_new_children_skips_known_and_foreign_files(tmp_path: Path) -> None:
    for name in ("agent-1111111.jsonl", "agent-2222222.jsonl", "agent-xyz.jsonl", "notes.txt"):
        (tmp_path / name).write_text("")

    assert scan_for_new_children(str(tmp_path), ["1111111"]) == ["2222222"]
    assert scan_for_new_children(str(tmp_path / "missing"), []) == []


def test_extract_child_ids_reads_reported_agents_in_order(tmp_path: Path) -> None:
    session = tmp_path / "main.jsonl"
    records = [
        {"type": "user", "toolUseResult": {"agentId": "bbbbbbb"}},
        {"type": "assistant"},
        {"type": "user", "toolUseResult": {"agentId": "../etc"}},
        {"type": "user", "toolUseResult": {"agentId": "aaaaaaa"}},
        {"type": "user", "toolUseResult": {"agentId": "bbbbbbb"}},
    ]
    session.write_text("\n".join(json.dumps(r) for r in records) + "\nnot json\n\n")

    assert extract_child_ids(str(session)) == ["bbbbbbb", "aaaaaaa"]
    assert extract_child_ids(str(tmp_path / "absent.jsonl")) == []


def test_attach_with_retry_waits_for_file(tmp_path: Path, notifier) -> None:
    path = tmp_path / "agent-a0627b6.jsonl"
    mux = FakeMultiplexer()
    sleeps = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 3:
            path.write_text("")

    policy = RetryPolicy(max_retries=5, retry_delay=0.2, initial_delay=0.1)
    assert attach_with_retry(str(path), "a0627b6", mux, notifier, policy, sleep=fake_sleep)

    assert sleeps == [0.1, 0.2, 0.2]
    assert mux.labels() == ["[a0627b6]"]


def test_attach_with_retry_gives_up_quietly(tmp_path: Path, notifier, messages) -> None:
    sleeps = []
    policy = RetryPolicy(max_retries=3, retry_delay=0.1, initial_delay=0.05)

    attached = attach_with_retry(
        str(tmp_path / "agent-a0627b6.jsonl"), "a0627b6", FakeMultiplexer(), notifier, policy,
        sleep=sleeps.append,
    )

    assert not attached
    assert sleeps == [0.05, 0.1, 0.1, 0.1]
    assert messages.snapshot() == ["Child session file not found after retries: a0627b6"]


def test_attach_with_retry_stops_when_inactive(tmp_path: Path, notifier) -> None:
    path = tmp_path / "agent-a0627b6.jsonl"
    path.write_text("")
    mux = FakeMultiplexer()

    assert not attach_with_retry(str(path), "a0627b6", mux, notifier, is_active=lambda: False, sleep=lambda s: None)
    assert mux.added == []


def test_attach_failure_is_reported(tmp_path: Path, notifier, messages) -> None:
    path = tmp_path / "agent-a0627b6.jsonl"
    path.write_text("")

    assert not attach_with_retry(str(path), "a0627b6", FakeMultiplexer(fail=True), notifier, sleep=lambda s: None)
    assert messages.snapshot()[0].startswith("Failed to add child session watcher: a0627b6")


def test_register_if_new_is_idempotent(tmp_path: Path, wait_for) -> None:
    (tmp_path / "agent-a0627b6.jsonl").write_text("")
    mux = FakeMultiplexer()
    registry = SessionRegistry()
    registry.add_session("main", "[MAIN]", "/p/main.jsonl")
    discovery = make_discovery(tmp_path, mux, sessions=registry)
    policy = RetryPolicy(max_retries=2, retry_delay=0.01, initial_delay=0.01)

    assert discovery.register_if_new("a0627b6", policy, "found")
    assert not discovery.register_if_new("a0627b6", policy, "found")
    assert not discovery.register_if_new("../etc", policy, "found")

    assert wait_for(lambda: mux.labels() == ["[a0627b6]"])
    assert [s.id for s in registry.get_all()] == ["main", "a0627b6"]
    assert discovery.known_ids == {"a0627b6"}
    assert discovery.is_known("a0627b6")
    assert not discovery.is_known("b9d1e4f")
    discovery.stop()


def test_disabled_discovery_lists_sessions_without_attaching(tmp_path: Path, messages, notifier) -> None:
    mux = FakeMultiplexer()
    registry = SessionRegistry()
    discovery = make_discovery(tmp_path, mux, sessions=registry, notifier=notifier, enabled=False)

    discovery.handle_inline_trigger("a0627b6")
    discovery.handle_early_trigger()
    discovery.start_watch()
    time.sleep(0.2)

    assert [s.id for s in registry.get_all()] == ["a0627b6"]
    assert registry.get_all()[0].done
    assert mux.added == []
    assert "New child session detected: a0627b6" not in messages.snapshot()


def test_inline_trigger_registers_and_marks_done(tmp_path: Path, wait_for, messages, notifier) -> None:
    (tmp_path / "agent-b9d1e4f.jsonl").write_text("")
    mux = FakeMultiplexer()
    registry = SessionRegistry()
    registry.add_session("main", "[MAIN]", "/p/main.jsonl")
    updates = []
    discovery = make_discovery(tmp_path, mux, sessions=registry, notifier=notifier, on_update=lambda: updates.append(1))

    discovery.handle_inline_trigger("b9d1e4f")
    discovery.handle_inline_trigger("not-hex!")

    assert "New child session detected: b9d1e4f" in messages.snapshot()
    assert registry.snapshot().sessions[1].done
    assert updates == [1]
    assert wait_for(lambda: mux.labels() == ["[b9d1e4f]"])
    discovery.stop()


def test_inline_trigger_marks_known_child_done(tmp_path: Path) -> None:
    registry = SessionRegistry()
    registry.add_session("a0627b6", "[a0627b6]", "/p/agent-a0627b6.jsonl")
    discovery = make_discovery(tmp_path, sessions=registry, known_ids=["a0627b6"])

    discovery.handle_inline_trigger("a0627b6")

    assert registry.get_all()[0].done
    discovery.stop()


def test_registration_racing_stop_leaves_registry_alone(tmp_path: Path, monkeypatch) -> None:
    registry = SessionRegistry()
    registry.add_session("main", "[MAIN]", "/p/main.jsonl")
    mux = FakeMultiplexer()
    discovery = make_discovery(tmp_path, mux, sessions=registry)
    real_child_path_for = discovery_module.child_path_for

    def stop_then_resolve(directory, child_id):
        # stop() lands between validation and registration
        discovery.stop()
        return real_child_path_for(directory, child_id)

    monkeypatch.setattr(discovery_module, "child_path_for", stop_then_resolve)

    assert not discovery.register_if_new("a0627b6", RetryPolicy(0, 0, 0), "found")
    assert [s.id for s in registry.get_all()] == ["main"]
    assert mux.added == []


def test_inline_trigger_after_stop_does_nothing(tmp_path: Path) -> None:
    registry = SessionRegistry()
    registry.add_session("main", "[MAIN]", "/p/main.jsonl")
    registry.add_session("a0627b6", "[a0627b6]", "/p/agent-a0627b6.jsonl")
    updates = []
    discovery = make_discovery(
        tmp_path, sessions=registry, known_ids=["a0627b6"], on_update=lambda: updates.append(1)
    )

    discovery.stop()
    discovery.handle_inline_trigger("a0627b6")
    discovery.handle_inline_trigger("b9d1e4f")

    assert not registry.get_all()[1].done
    assert [s.id for s in registry.get_all()] == ["main", "a0627b6"]
    assert updates == []


def test_stop_waits_for_registration_in_progress(tmp_path: Path) -> None:
    entered = threading.Event()
    release = threading.Event()

    def slow_on_added(session) -> None:
        entered.set()
        release.wait(5)

    registry = SessionRegistry(on_added=slow_on_added)
    updates = []
    discovery = make_discovery(tmp_path, sessions=registry, on_update=lambda: updates.append(1))

    trigger = threading.Thread(target=discovery.handle_inline_trigger, args=("a0627b6",))
    trigger.start()
    assert entered.wait(5)
    stopper = threading.Thread(target=discovery.stop)
    stopper.start()
    time.sleep(0.1)

    assert stopper.is_alive()
    release.set()
    trigger.join(5)
    stopper.join(5)
    assert not stopper.is_alive()
    assert updates == [1]

    discovery.handle_inline_trigger("b9d1e4f")
    assert updates == [1]
    assert [s.id for s in registry.get_all()] == ["a0627b6"]


def test_rescan_registers_new_files(tmp_path: Path, wait_for) -> None:
    (tmp_path / "agent-1111111.jsonl").write_text("")
    (tmp_path / "agent-2222222.jsonl").write_text("")
    mux = FakeMultiplexer()
    discovery = make_discovery(tmp_path, mux, known_ids=["1111111"])

    assert discovery.rescan() == ["2222222"]
    assert discovery.rescan() == []
    assert wait_for(lambda: mux.labels() == ["[2222222]"])
    discovery.stop()


def test_early_trigger_rescans_shortly(tmp_path: Path, wait_for) -> None:
    mux = FakeMultiplexer()
    discovery = make_discovery(tmp_path, mux)
    (tmp_path / "agent-3333333.jsonl").write_text("")

    discovery.handle_early_trigger()

    assert wait_for(lambda: mux.labels() == ["[3333333]"])
    discovery.stop()


def test_stop_cancels_pending_rescans(tmp_path: Path) -> None:
    mux = FakeMultiplexer()
    discovery = make_discovery(tmp_path, mux)
    (tmp_path / "agent-3333333.jsonl").write_text("")

    discovery.handle_early_trigger()
    discovery.stop()
    time.sleep(0.3)

    assert discovery.known_ids == set()
    assert mux.added == []
    assert discovery.rescan() == []


def test_directory_watch_attaches_new_files(tmp_path: Path, wait_for) -> None:
    mux = FakeMultiplexer()
    discovery = make_discovery(tmp_path, mux)
    discovery.start_watch()

    (tmp_path / "agent-4444444.jsonl").write_text("{}\n")

    assert wait_for(lambda: mux.labels() == ["[4444444]"])
    discovery.stop()


def test_watch_waits_for_directory_to_be_created(tmp_path: Path, wait_for) -> None:
    subagents = tmp_path / "session" / "subagents"
    (tmp_path / "session").mkdir()
    mux = FakeMultiplexer()
    discovery = make_discovery(subagents, mux)
    discovery.start_watch()

    subagents.mkdir()
    time.sleep(0.3)
    (subagents / "agent-5555555.jsonl").write_text("{}\n")

    assert wait_for(lambda: mux.labels() == ["[5555555]"])
    discovery.stop()
