"""Bell trigger: turns the school timetable into queued sound queries.

Once per tick the trigger scans the trailing window ``(from, now]`` where
``from = max(last_tick, now - catch_up)`` and enqueues every lesson edge that
falls inside it. Fired edges are remembered per day so overlapping windows
never fire the same edge twice; edges older than the catch-up window are
dropped.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Protocol

from bellhub.engine.clock import Clock
from bellhub.engine.models import KIND_SOUND, SCHEDULER_AUTHOR, Query
from bellhub.engine.queues import ChannelQueueManager
from bellhub.engine.timetable import (
    EDGES,
    BellSnapshot,
    edge_time,
    mute_state_for_date,
    resolve_edge_sound,
    schedule_for_date,
    target_icom,
    weekday_key,
)

logger = logging.getLogger(__name__)

DEFAULT_CATCH_UP_SECONDS = 300
DEFAULT_SCHEDULER_PRIORITY = 1


class SnapshotSource(Protocol):
    async def load_snapshot(self) -> BellSnapshot: ...


class BellTrigger:
    def __init__(
        self,
        manager: ChannelQueueManager,
        source: SnapshotSource,
        clock: Clock,
        *,
        tick_seconds: float = 1.0,
        catch_up_seconds: float = DEFAULT_CATCH_UP_SECONDS,
        priority: int = DEFAULT_SCHEDULER_PRIORITY,
    ) -> None:
        self.manager = manager
        self.source = source
        self.clock = clock
        self.tick_seconds = tick_seconds
        self.catch_up = timedelta(seconds=catch_up_seconds)
        self.priority = priority
        self._day: date | None = None
        self._fired: set[str] = set()
        self._last_tick: datetime | None = None

    @property
    def fired_keys(self) -> frozenset[str]:
        return frozenset(self._fired)

    def reset(self, now: datetime) -> None:
        """Forget fired edges and start scanning from ``now``."""
        self._day = now.date()
        self._fired.clear()
        self._last_tick = now

    async def run(self) -> None:
        """Tick forever. Never stops on a failed tick."""
        self.reset(self.clock.now())
        logger.info(
            f"Bell trigger started (tick={self.tick_seconds}s, "
            f"catch-up={int(self.catch_up.total_seconds())}s)"
        )
        while True:
            await asyncio.sleep(self.tick_seconds)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Bell trigger tick failed: {e}")

    async def tick(self) -> list[Query]:
        """Load the timetable and process one tick. Returns the queries fired."""
        try:
            snapshot = await self.source.load_snapshot()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Bell trigger skipped a tick, timetable unavailable: {e}")
            return []
        return self.process_tick(self.clock.now(), snapshot)

    def process_tick(self, now: datetime, snapshot: BellSnapshot) -> list[Query]:
        day = now.date()
        if day != self._day:
            if self._day is not None:
                logger.info(f"Bell trigger day changed to {day.isoformat()}")
            self._day = day
            self._fired.clear()

        if self._last_tick is None:
            window_start = now
        else:
            window_start = max(self._last_tick, now - self.catch_up)
        self._last_tick = now

        bells = snapshot.bells
        if not bells.enabled or not bells.weekday_enabled(weekday_key(day)):
            return []

        schedule = schedule_for_date(snapshot, day)
        if schedule is None:
            return []

        mute = mute_state_for_date(snapshot.overrides, day)
        if mute.mute_all:
            return []

        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        fired: list[Query] = []
        for lesson_index, lesson in enumerate(schedule.lessons):
            if lesson_index in mute.muted_lessons:
                continue
            for edge in EDGES:
                seconds = edge_time(lesson, edge)
                if seconds is None:
                    continue
                sound_name = resolve_edge_sound(bells, lesson, lesson_index, edge)
                if sound_name is None:
                    continue
                event_at = day_start + timedelta(seconds=seconds)
                if event_at <= window_start or event_at > now:
                    continue
                key = (
                    f"{day.isoformat()}|{schedule.id}|{lesson_index}|{edge}|{seconds}|{sound_name}"
                )
                query = self._fire(key, sound_name, snapshot, now)
                if query is not None:
                    fired.append(query)
        return fired

    def _fire(
        self, key: str, sound_name: str, snapshot: BellSnapshot, now: datetime
    ) -> Query | None:
        if key in self._fired:
            return None
        icom = target_icom(snapshot.icoms)
        if icom is None:
            logger.warning(f"No icom available for bell {key}")
            return None

        self._fired.add(key)
        query = Query(
            id=uuid.uuid4().hex,
            kind=KIND_SOUND,
            icom=icom,
            priority=self.priority,
            force=False,
            created_at=now,
            updated_at=now,
            author=SCHEDULER_AUTHOR,
            duration=snapshot.sound_duration(sound_name),
            sound_name=sound_name,
        )
        logger.info(f"Bell fired: {key} -> '{icom}'")
        self.manager.enqueue(query)
        return query
