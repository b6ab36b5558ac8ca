"""Shared fixtures: a hand-driven clock and timers, a recording playback backend."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

import pytest

from bellhub.engine.errors import PlaybackFailure
from bellhub.engine.models import KIND_SOUND, Query, QueryAuthor
from bellhub.engine.playback import PlaybackBackend, PlaybackHandle
from bellhub.engine.queues import ChannelQueueManager
from bellhub.engine.store import QueryStore
from bellhub.engine.timetable import BellSnapshot

# A Monday
START = datetime(2026, 9, 7, 7, 59, 0)


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


@dataclass
class ManualTimer:
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Collects call_later requests; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in self.pending:
            timer.fired = True
            timer.callback()


@dataclass
class PlayCall:
    handle: PlaybackHandle
    volume: int
    on_ended: Callable[[], None]
    on_error: Callable[[], None]


class RecordingPlayback(PlaybackBackend):
    def __init__(self) -> None:
        self.calls: list[PlayCall] = []
        self.stopped: list[str] = []
        self.volumes: dict[str, int] = {}
        self.failing: set[str] = set()
        self.crashing: dict[str, Exception] = {}

    def play(self, query_id, sound_name, icom, volume, on_ended, on_error) -> PlaybackHandle:
        if sound_name in self.failing:
            raise PlaybackFailure(f"cannot play {sound_name}")
        if sound_name in self.crashing:
            raise self.crashing[sound_name]
        handle = PlaybackHandle(query_id=query_id, icom=icom, sound_name=sound_name)
        self.calls.append(PlayCall(handle, volume, on_ended, on_error))
        return handle

    def stop(self, handle: PlaybackHandle) -> None:
        handle.stopped = True
        self.stopped.append(handle.query_id)

    def set_volume(self, icom: str, level: int) -> None:
        self.volumes[icom] = level

    def call_for(self, query_id: str) -> PlayCall:
        return next(call for call in self.calls if call.handle.query_id == query_id)


class StaticSnapshotSource:
    def __init__(self, snapshot: BellSnapshot | None = None) -> None:
        self.snapshot = snapshot or BellSnapshot()
        self.error: Exception | None = None
        self.loads = 0

    async def load_snapshot(self) -> BellSnapshot:
        self.loads += 1
        if self.error is not None:
            raise self.error
        return self.snapshot


class RecordingObserver:
    def __init__(self, log: list[tuple[str, str]] | None = None) -> None:
        self.events: list[tuple[str, str]] = log if log is not None else []

    def on_waiting(self, query: Query) -> None:
        self.events.append(("waiting", query.id))

    def on_playing(self, query: Query) -> None:
        self.events.append(("playing", query.id))

    def on_stopped(self, query: Query) -> None:
        self.events.append((query.status, query.id))


@dataclass
class QueryFactory:
    clock: FakeClock
    author: QueryAuthor = field(default_factory=lambda: QueryAuthor("root", "root", "Service"))

    def __call__(
        self,
        icom: str = "A",
        priority: int = 0,
        force: bool = False,
        *,
        query_id: str | None = None,
        sound_name: str | None = "bell.mp3",
        duration: float | None = 3.0,
        kind: str = KIND_SOUND,
    ) -> Query:
        now = self.clock.now()
        return Query(
            id=query_id or uuid.uuid4().hex,
            kind=kind,
            icom=icom,
            priority=priority,
            force=force,
            created_at=now,
            updated_at=now,
            author=self.author,
            duration=duration,
            sound_name=sound_name,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def playback() -> RecordingPlayback:
    return RecordingPlayback()


@pytest.fixture
def store() -> QueryStore:
    return QueryStore()


@pytest.fixture
def manager(store, playback, clock, timers) -> ChannelQueueManager:
    return ChannelQueueManager(store, playback, clock=clock, timers=timers)


@pytest.fixture
def make_query(clock) -> QueryFactory:
    return QueryFactory(clock)
