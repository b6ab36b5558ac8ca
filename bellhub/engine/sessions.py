"""Live session protocol.

A live session wraps one duplex transport. Text frames carry JSON control
messages (``start`` / ``stop``), binary frames carry the audio pushed while
the session's query plays. Lifecycle events flow back through the session's
outbound queue, which the transport layer drains:

    {"type": "waiting"} | {"type": "started"} | {"type": "stopped"}
    {"type": "error", "error": "<reason>"}

Errors are reported to the session and never close it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from bellhub.engine.clock import Clock
from bellhub.engine.models import (
    CANCELLED,
    KIND_LIVE_STREAM,
    PLAYING,
    PRIORITY_MAX,
    PRIORITY_MIN,
    Query,
    QueryAuthor,
    StreamStats,
)
from bellhub.engine.queues import ChannelQueueManager

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "validation error"
ICOM_NOT_FOUND = "icom not found"


class StartMessage(BaseModel):
    type: Literal["start"]
    icom: str = Field(min_length=1)
    priority: int = Field(default=0, ge=PRIORITY_MIN, le=PRIORITY_MAX)
    force: bool = False


class LiveSession:
    """One transport connection driving at most one live-stream query."""

    def __init__(self, author: QueryAuthor | None) -> None:
        self.id = uuid.uuid4().hex
        self.author = author
        self.query_id: str | None = None
        self.closed = False
        self.events: asyncio.Queue[dict] = asyncio.Queue()

    def send(self, event: dict) -> None:
        if not self.closed:
            self.events.put_nowait(event)

    def send_error(self, reason: str) -> None:
        self.send({"type": "error", "error": reason})

    # QueryObserver
    def on_waiting(self, query: Query) -> None:
        self.send({"type": "waiting"})

    def on_playing(self, query: Query) -> None:
        self.send({"type": "started"})

    def on_stopped(self, query: Query) -> None:
        self.send({"type": "stopped"})


class LiveSessionHandler:
    def __init__(
        self,
        manager: ChannelQueueManager,
        icom_exists: Callable[[str], Awaitable[bool]],
        clock: Clock,
        *,
        buffer_chunks: int = 24,
    ) -> None:
        self.manager = manager
        self.clock = clock
        self.buffer_chunks = buffer_chunks
        self._icom_exists = icom_exists
        self._sessions: dict[str, LiveSession] = {}
        self._stats: dict[str, StreamStats] = {}
        manager.store.on_evict(lambda query_id: self._stats.pop(query_id, None))

    def __len__(self) -> int:
        return len(self._sessions)

    def stats(self, query_id: str) -> StreamStats | None:
        return self._stats.get(query_id)

    def open(self, author: QueryAuthor | None) -> LiveSession:
        session = LiveSession(author)
        self._sessions[session.id] = session
        logger.info(f"Live session {session.id} opened")
        return session

    async def handle_text(self, session: LiveSession, raw: str) -> None:
        if session.closed:
            return

        try:
            message = json.loads(raw)
        except ValueError:
            session.send_error(VALIDATION_ERROR)
            return
        if not isinstance(message, dict):
            session.send_error(VALIDATION_ERROR)
            return

        msg_type = message.get("type")
        if msg_type == "stop":
            self._stop(session)
            return
        if msg_type != "start":
            session.send_error(VALIDATION_ERROR)
            return

        try:
            start = StartMessage.model_validate(message)
        except ValidationError:
            session.send_error(VALIDATION_ERROR)
            return

        try:
            exists = await self._icom_exists(start.icom)
        except Exception as e:
            logger.warning(f"Live session {session.id}: icom lookup failed: {e}")
            session.send_error("icom lookup failed")
            return
        if not exists:
            session.send_error(ICOM_NOT_FOUND)
            return
        if session.closed:
            return

        self._start(session, start)

    def _start(self, session: LiveSession, start: StartMessage) -> None:
        self._cancel_current(session)

        now = self.clock.now()
        query = Query(
            id=uuid.uuid4().hex,
            kind=KIND_LIVE_STREAM,
            icom=start.icom,
            priority=start.priority,
            force=start.force,
            created_at=now,
            updated_at=now,
            author=session.author,
        )
        session.query_id = query.id
        self._stats[query.id] = StreamStats(max_buffers=self.buffer_chunks)
        self.manager.lifecycle.subscribe(query.id, session)
        logger.info(f"Live session {session.id} starts query {query.id} on '{start.icom}'")
        self.manager.enqueue(query)

    def _cancel_current(self, session: LiveSession) -> None:
        if session.query_id is None:
            return
        self.manager.lifecycle.finish(session.query_id, CANCELLED)
        session.query_id = None

    def _stop(self, session: LiveSession) -> None:
        if session.query_id is not None:
            # The explicit acknowledgement below replaces the lifecycle event
            self.manager.lifecycle.unsubscribe(session.query_id)
        self._cancel_current(session)
        session.send({"type": "stopped"})

    def handle_binary(self, session: LiveSession, data: bytes) -> None:
        if session.closed or session.query_id is None:
            return
        query = self.manager.store.get(session.query_id)
        if query is None or query.status != PLAYING:
            return
        stats = self._stats.get(query.id)
        if stats is None:
            return
        stats.add(data)

    def close(self, session: LiveSession) -> None:
        """Transport closed: cancel the driven query and release the session."""
        if session.closed:
            return
        if session.query_id is not None:
            self.manager.lifecycle.unsubscribe(session.query_id)
        self._cancel_current(session)
        session.closed = True
        self._sessions.pop(session.id, None)
        logger.info(f"Live session {session.id} closed")

    def close_all(self) -> None:
        for session in list(self._sessions.values()):
            self.close(session)
