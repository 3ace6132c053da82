"""
Shared fixtures: a temporary SQLite sheet store, a repository pinned to a
fixed date, and a manually advanced clock.
"""

from datetime import date, timedelta

import pytest

from memory_proxy.core.repository import RecordRepository
from memory_proxy.core.store import SqliteSheetStore

TODAY = date(2025, 3, 20)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def days_ago(days: int) -> str:
    return (TODAY - timedelta(days=days)).isoformat()


@pytest.fixture
def store(tmp_path):
    """Create an empty store backed by a temporary database."""
    return SqliteSheetStore(db_path=str(tmp_path / "test_memory_proxy.db"))


@pytest.fixture
def repository(store):
    return RecordRepository(store, today=lambda: TODAY)


@pytest.fixture
def clock():
    return FakeClock()
