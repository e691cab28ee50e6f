"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from src.database.repository import Store
from src.ledger.clock import FixedClock

FIXTURE_DIR = Path(__file__).parent / "fixtures"

# A Tuesday afternoon, so "today" and "now" differ
NOW = datetime(2026, 3, 10, 15, 30, 0)


class ManualScheduler:
    """Stands in for threading.Timer: callbacks run only when time is advanced."""

    class Handle:
        def __init__(self, due: float, callback):
            self.due = due
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.time = 0.0
        self.handles: list[ManualScheduler.Handle] = []

    def __call__(self, delay, callback):
        handle = self.Handle(self.time + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[Handle]:
        return [h for h in self.handles if not h.cancelled and h.callback is not None]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self.pending if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.time = handle.due
            callback, handle.callback = handle.callback, None
            callback()
        self.time = target


def sequential_ids(prefix: str = "auid"):
    counter = iter(range(1, 10_000))
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    s = Store(":memory:")
    s.open_or_create()
    yield s
    s.close()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "momental.db")
