"""Query lifecycle: waiting -> playing -> finished | cancelled.

Every method here is a synchronous step on the event loop, so no two
transitions interleave. Terminal queries are never touched again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Protocol

from bellhub.engine.clock import Clock, TimerHandle, TimerScheduler
from bellhub.engine.errors import PlaybackFailure
from bellhub.engine.models import (
    CANCELLED,
    FINISHED,
    KIND_SOUND,
    PLAYING,
    WAITING,
    IcomQueue,
    Query,
)
from bellhub.engine.playback import PlaybackBackend, PlaybackHandle
from bellhub.engine.store import QueryStore

logger = logging.getLogger(__name__)

MIN_AUTO_FINISH_SECONDS = 0.5


class QueryObserver(Protocol):
    """Receives lifecycle events for the query it is subscribed to."""

    def on_waiting(self, query: Query) -> None: ...

    def on_playing(self, query: Query) -> None: ...

    def on_stopped(self, query: Query) -> None: ...


class QueryLifecycle:
    def __init__(
        self,
        store: QueryStore,
        queues: dict[str, IcomQueue],
        playback: PlaybackBackend,
        *,
        clock: Clock,
        timers: TimerScheduler,
        on_released: Callable[[str], None],
        volume: int = 65,
        unknown_duration_fallback: float | None = 2.0,
    ) -> None:
        self.store = store
        self.playback = playback
        self.clock = clock
        self.timers = timers
        self.volume = volume
        self.unknown_duration_fallback = unknown_duration_fallback
        self._queues = queues
        self._on_released = on_released
        self._auto_finish: dict[str, TimerHandle] = {}
        self._playing: dict[str, PlaybackHandle] = {}
        self._observers: dict[str, QueryObserver] = {}

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, query_id: str, observer: QueryObserver) -> None:
        self._observers[query_id] = observer

    def unsubscribe(self, query_id: str) -> None:
        self._observers.pop(query_id, None)

    def _notify(self, query: Query, event: str) -> None:
        observer = self._observers.get(query.id)
        if observer is None:
            return
        try:
            getattr(observer, event)(query)
        except Exception as e:
            logger.exception(f"Observer {event} failed for query {query.id}: {e}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def queue_for(self, icom: str) -> IcomQueue:
        queue = self._queues.get(icom)
        if queue is None:
            queue = self._queues[icom] = IcomQueue()
        return queue

    def mark_waiting(self, query: Query) -> None:
        query.status = WAITING
        query.updated_at = self.clock.now()
        logger.debug(f"Query {query.id} waiting on '{query.icom}' (priority {query.priority})")
        self._notify(query, "on_waiting")

    def start(self, query: Query) -> None:
        """waiting -> playing. The icom slot must be free."""
        queue = self.queue_for(query.icom)
        queue.playing_id = query.id
        query.status = PLAYING
        query.updated_at = self.clock.now()
        logger.info(
            f"Query {query.id} playing on '{query.icom}'"
            + (f": {query.sound_name}" if query.sound_name else f" ({query.kind})")
        )
        self._notify(query, "on_playing")

        if query.status != PLAYING:
            # An observer cancelled the query from inside on_playing
            return

        if query.kind == KIND_SOUND and query.sound_name:
            query_id = query.id
            try:
                self._playing[query_id] = self.playback.play(
                    query_id,
                    query.sound_name,
                    query.icom,
                    self.volume,
                    lambda: self._on_playback_ended(query_id),
                    lambda: self._on_playback_error(query_id),
                )
            except PlaybackFailure as e:
                logger.warning(f"Playback failed to start for query {query_id}: {e}")
                self.finish(query_id, FINISHED)
                return
            except Exception:
                logger.exception(f"Playback backend error starting query {query_id}")
                self.finish(query_id, FINISHED)
                return

        self._arm_auto_finish(query)

    def finish(
        self, query_id: str, status: str = FINISHED, *, advance: bool = True
    ) -> Query | None:
        """Move a query to a terminal status and release its icom slot.

        Returns the query (unchanged if it was already terminal), or None when
        the id is unknown. With ``advance=False`` the freed slot is left empty
        for the caller to fill.
        """
        query = self.store.get(query_id)
        if query is None:
            return None
        if query.is_terminal:
            return query

        self._clear_auto_finish(query_id)
        handle = self._playing.pop(query_id, None)
        if handle is not None:
            self.playback.stop(handle)

        queue = self.queue_for(query.icom)
        was_playing = queue.playing_id == query_id
        if was_playing:
            queue.playing_id = None
        elif query_id in queue.waiting:
            queue.waiting.remove(query_id)

        query.status = status
        query.updated_at = self.clock.now()
        logger.info(f"Query {query_id} {status} on '{query.icom}'")
        self._notify(query, "on_stopped")
        self.unsubscribe(query_id)

        if was_playing and advance:
            self._on_released(query.icom)
        self.store.retire()
        return query

    def set_volume(self, level: int) -> None:
        self.volume = level
        for icom in list(self._queues):
            self.playback.set_volume(icom, level)

    def stop_all(self) -> None:
        """Cancel every active query. Used on shutdown."""
        for query in self.store:
            if not query.is_terminal:
                self.finish(query.id, CANCELLED, advance=False)

    # ------------------------------------------------------------------
    # Timers and playback signals
    # ------------------------------------------------------------------

    def _auto_finish_seconds(self, query: Query) -> float | None:
        if query.duration is not None:
            return max(MIN_AUTO_FINISH_SECONDS, query.duration)
        if query.kind == KIND_SOUND and self.unknown_duration_fallback is not None:
            return max(MIN_AUTO_FINISH_SECONDS, self.unknown_duration_fallback)
        return None

    def _arm_auto_finish(self, query: Query) -> None:
        seconds = self._auto_finish_seconds(query)
        if seconds is None:
            logger.debug(f"Query {query.id} has no known duration, no auto-finish armed")
            return
        query_id = query.id
        query.auto_finish_at = self.clock.now() + timedelta(seconds=seconds)
        self._auto_finish[query_id] = self.timers.call_later(
            seconds, lambda: self._on_auto_finish(query_id)
        )

    def _clear_auto_finish(self, query_id: str) -> None:
        handle = self._auto_finish.pop(query_id, None)
        if handle is not None:
            handle.cancel()

    def _on_auto_finish(self, query_id: str) -> None:
        self._auto_finish.pop(query_id, None)
        logger.debug(f"Auto-finish deadline reached for query {query_id}")
        self.finish(query_id, FINISHED)

    def _on_playback_ended(self, query_id: str) -> None:
        self.finish(query_id, FINISHED)

    def _on_playback_error(self, query_id: str) -> None:
        logger.warning(f"Playback error for query {query_id}")
        self.finish(query_id, FINISHED)
