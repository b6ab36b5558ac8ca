"""Dispatch runtime: the engine state owned by one event loop.

Built once in the application lifespan and handed to request handlers, so
nothing in the engine lives in module-level globals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from bellhub.engine.bell_trigger import BellTrigger, SnapshotSource
from bellhub.engine.clock import Clock, LoopTimers, TimerScheduler
from bellhub.engine.playback import PlaybackBackend
from bellhub.engine.queues import ChannelQueueManager
from bellhub.engine.sessions import LiveSessionHandler
from bellhub.engine.store import DEFAULT_HISTORY_LIMIT, QueryStore

logger = logging.getLogger(__name__)


class DispatchRuntime:
    def __init__(
        self,
        *,
        playback: PlaybackBackend,
        snapshot_source: SnapshotSource,
        icom_exists: Callable[[str], Awaitable[bool]],
        clock: Clock,
        timers: TimerScheduler | None = None,
        volume: int = 65,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        unknown_duration_fallback: float | None = 2.0,
        tick_seconds: float = 1.0,
        catch_up_seconds: float = 300,
        scheduler_priority: int = 1,
        stream_buffer_chunks: int = 24,
    ) -> None:
        self.clock = clock
        self.playback = playback
        self.store = QueryStore(limit=history_limit)
        self.queues = ChannelQueueManager(
            self.store,
            playback,
            clock=clock,
            timers=timers or LoopTimers(),
            volume=volume,
            unknown_duration_fallback=unknown_duration_fallback,
        )
        self.bells = BellTrigger(
            self.queues,
            snapshot_source,
            clock,
            tick_seconds=tick_seconds,
            catch_up_seconds=catch_up_seconds,
            priority=scheduler_priority,
        )
        self.sessions = LiveSessionHandler(
            self.queues, icom_exists, clock, buffer_chunks=stream_buffer_chunks
        )
        self._bell_task: asyncio.Task | None = None

    @property
    def lifecycle(self):
        return self.queues.lifecycle

    def start(self, *, scheduler: bool = True) -> None:
        if scheduler and self._bell_task is None:
            self._bell_task = asyncio.create_task(self.bells.run())

    async def shutdown(self) -> None:
        if self._bell_task is not None:
            self._bell_task.cancel()
            try:
                await self._bell_task
            except asyncio.CancelledError:
                pass
            self._bell_task = None
        self.sessions.close_all()
        self.queues.lifecycle.stop_all()
        logger.info("Dispatch runtime stopped")
