"""Per-icom priority queues and admission/preemption of queries."""

from __future__ import annotations

import logging

from bellhub.engine.clock import Clock, TimerScheduler
from bellhub.engine.errors import ConflictError, NotFoundError
from bellhub.engine.lifecycle import QueryLifecycle
from bellhub.engine.models import CANCELLED, FINISHED, PLAYING, WAITING, IcomQueue, Query
from bellhub.engine.playback import PlaybackBackend
from bellhub.engine.store import QueryStore

logger = logging.getLogger(__name__)


class ChannelQueueManager:
    """Owns one now-playing slot and one waiting line per icom.

    Waiting lines are ordered by non-increasing priority and keep arrival
    order among equal priorities. Icom queues are created on first reference.
    """

    def __init__(
        self,
        store: QueryStore,
        playback: PlaybackBackend,
        *,
        clock: Clock,
        timers: TimerScheduler,
        volume: int = 65,
        unknown_duration_fallback: float | None = 2.0,
    ) -> None:
        self.store = store
        self._queues: dict[str, IcomQueue] = {}
        self.lifecycle = QueryLifecycle(
            store,
            self._queues,
            playback,
            clock=clock,
            timers=timers,
            on_released=self.advance,
            volume=volume,
            unknown_duration_fallback=unknown_duration_fallback,
        )

    def queue(self, icom: str) -> IcomQueue:
        return self.lifecycle.queue_for(icom)

    def enqueue(self, query: Query) -> Query:
        """Admit a query: preempt if forced, start if idle, otherwise wait."""
        if query.id in self.store:
            raise ConflictError(f"query {query.id} already exists")
        self.store.insert(query)
        queue = self.queue(query.icom)

        if query.force and queue.playing_id:
            logger.info(f"Query {query.id} preempts {queue.playing_id} on '{query.icom}'")
            self.lifecycle.finish(queue.playing_id, CANCELLED, advance=False)

        if queue.playing_id is None:
            self.lifecycle.start(query)
        else:
            self._insert_waiting(queue, query)
            self.lifecycle.mark_waiting(query)

        self.store.retire()
        return query

    def _insert_waiting(self, queue: IcomQueue, query: Query) -> None:
        for index, waiting_id in enumerate(queue.waiting):
            current = self.store.get(waiting_id)
            if current is None:
                continue
            if query.priority > current.priority:
                queue.waiting.insert(index, query.id)
                return
        queue.waiting.append(query.id)

    def cancel(self, query_id: str) -> Query:
        """Cancel a waiting or playing query. No-op for terminal queries."""
        query = self.lifecycle.finish(query_id, CANCELLED)
        if query is None:
            raise NotFoundError("query not found")
        return query

    def finish(self, query_id: str) -> Query:
        """Mark a playing query finished. Waiting and terminal queries are returned as-is."""
        query = self.store.get(query_id)
        if query is None:
            raise NotFoundError("query not found")
        if query.status != PLAYING:
            return query
        return self.lifecycle.finish(query_id, FINISHED) or query

    def advance(self, icom: str) -> None:
        """Start the next waiting query if the icom slot is free."""
        queue = self._queues.get(icom)
        if queue is None:
            return
        while queue.playing_id is None and queue.waiting:
            next_id = queue.waiting.pop(0)
            query = self.store.get(next_id)
            if query is None or query.status != WAITING:
                logger.debug(f"Skipping stale queue entry {next_id} on '{icom}'")
                continue
            self.lifecycle.start(query)

    def icom_state(self, icom: str) -> tuple[Query | None, list[Query]]:
        """Return (playing query, waiting queries in order) for an icom."""
        queue = self.queue(icom)
        playing = self.store.get(queue.playing_id) if queue.playing_id else None
        waiting = [q for q in (self.store.get(i) for i in queue.waiting) if q is not None]
        return playing, waiting

    def active_count(self) -> int:
        return sum(
            (1 if queue.playing_id else 0) + len(queue.waiting) for queue in self._queues.values()
        )
