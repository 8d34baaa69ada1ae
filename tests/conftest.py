from __future__ import annotations

import threading
import time
from typing import Callable, List

import pytest

from agenttail.core.notify import Notifier


class Recorder:
    """Thread-safe list of callback arguments."""

    def __init__(self) -> None:
        self.items: List = []
        self._lock = threading.Lock()

    def __call__(self, *args) -> None:
        with self._lock:
            self.items.append(args[0] if len(args) == 1 else args)

    def snapshot(self) -> List:
        with self._lock:
            return list(self.items)


def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def messages() -> Recorder:
    return Recorder()


@pytest.fixture
def notifier(messages: Recorder) -> Notifier:
    """Notifier that shows every level, debug included."""
    return Notifier(write=messages, verbose=True)
