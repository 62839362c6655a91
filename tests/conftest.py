"""Shared test fixtures."""

from datetime import datetime

import pytest

from daychute.datadir import DataDir
from daychute.notifications.router import NoticeRouter
from daychute.scheduler.engine import SchedulingEngine
from daychute.scheduler.store import ScheduleStore


class FakeClock:
    """Settable clock returning naive local datetimes."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeChannel:
    """Notice channel that records every message."""

    def __init__(self, channel_name: str = "fake") -> None:
        self._name = channel_name
        self.sent: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, message: str) -> bool:
        self.sent.append(message)
        return True


@pytest.fixture
def data_dir(tmp_path):
    """Create a DataDir rooted in a temporary directory."""
    DataDir._reset()
    d = DataDir(root=tmp_path / "data")
    DataDir._instance = d
    yield d
    DataDir._reset()


@pytest.fixture
def store(tmp_path) -> ScheduleStore:
    """Create a ScheduleStore backed by a temp data directory."""
    return ScheduleStore(root=tmp_path / "data")


@pytest.fixture
def clock() -> FakeClock:
    """Tuesday 2025-06-10, 10:30 (the 8:00-12:00 slot)."""
    return FakeClock(datetime(2025, 6, 10, 10, 30, 0))


@pytest.fixture
def notices():
    """Fresh NoticeRouter with a recording channel."""
    NoticeRouter._reset()
    channel = FakeChannel()
    router = NoticeRouter.get()
    router.register_channel(channel)
    yield channel
    NoticeRouter._reset()


@pytest.fixture
def engine(store, clock, notices) -> SchedulingEngine:
    return SchedulingEngine(store=store, router=NoticeRouter.get(), clock=clock)


@pytest.fixture
def write_template(store):
    """Async helper: write ``tasks/<name>.json`` with *fields* and return its path."""

    async def _write(name: str, **fields) -> str:
        path = f"tasks/{name}.json"
        await store.save_template(path, fields)
        return path

    return _write
