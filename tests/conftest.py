"""Shared test fixtures."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from brain.memory.clock import to_ms
from brain.memory.store import RecordStore

# 2025-03-14 10:00:00 UTC
NOON_ISH = datetime(2025, 3, 14, 10, 0, 0, tzinfo=UTC)


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: datetime = NOON_ISH) -> None:
        self.ms = to_ms(start)

    def __call__(self) -> int:
        return self.ms

    def advance(self, ms: int) -> None:
        self.ms += ms

    def set(self, dt: datetime) -> None:
        self.ms = to_ms(dt)


@pytest.fixture(autouse=False)
def _no_remote(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use a local file, not a remote primary."""
    monkeypatch.setattr("brain.config.settings.storage_url", "file://data/test.db")
    monkeypatch.setattr("brain.config.settings.memory_timezone", "UTC")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store(tmp_path: Path, clock: FakeClock) -> RecordStore:
    """Create a RecordStore backed by a temp database and a fake clock."""
    return RecordStore(db_path=tmp_path / "test.db", clock=clock)
