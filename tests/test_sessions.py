"""Live session control protocol."""

import asyncio

import pytest

from bellhub.engine.models import CANCELLED, KIND_LIVE_STREAM, PLAYING, WAITING, QueryAuthor
from bellhub.engine.sessions import ICOM_NOT_FOUND, VALIDATION_ERROR, LiveSessionHandler

KNOWN_ICOMS = {"A", "main"}
AUTHOR = QueryAuthor(type="account", name="operator", label="Account")


def drain(session) -> list[dict]:
    events = []
    while True:
        try:
            events.append(session.events.get_nowait())
        except asyncio.QueueEmpty:
            return events


@pytest.fixture
def handler(manager, clock) -> LiveSessionHandler:
    async def icom_exists(icom_id: str) -> bool:
        return icom_id in KNOWN_ICOMS

    return LiveSessionHandler(manager, icom_exists, clock, buffer_chunks=24)


@pytest.fixture
def session(handler):
    return handler.open(AUTHOR)


@pytest.mark.asyncio
async def test_start_on_idle_icom(handler, session, manager):
    await handler.handle_text(session, '{"type": "start", "icom": "A", "priority": 3}')

    assert drain(session) == [{"type": "started"}]
    query = manager.store.get(session.query_id)
    assert query.kind == KIND_LIVE_STREAM
    assert query.status == PLAYING
    assert query.priority == 3
    assert query.author == AUTHOR


@pytest.mark.asyncio
async def test_start_waits_behind_playing_query(handler, session, manager, make_query):
    busy = manager.enqueue(make_query(icom="A"))

    await handler.handle_text(session, '{"type": "start", "icom": "A"}')
    assert drain(session) == [{"type": "waiting"}]
    assert manager.store.get(session.query_id).status == WAITING

    manager.finish(busy.id)
    assert drain(session) == [{"type": "started"}]


@pytest.mark.asyncio
async def test_force_start_preempts_sound(handler, session, manager, make_query):
    busy = manager.enqueue(make_query(icom="A"))

    await handler.handle_text(session, '{"type": "start", "icom": "A", "force": true}')

    assert busy.status == CANCELLED
    assert drain(session) == [{"type": "started"}]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"type": "dance"}',
        '{"icom": "A"}',
        '{"type": "start"}',
        '{"type": "start", "icom": ""}',
        '{"type": "start", "icom": "A", "priority": 500}',
        '{"type": "start", "icom": "A", "priority": "high"}',
    ],
)
async def test_malformed_messages_report_validation_error(handler, session, raw):
    await handler.handle_text(session, raw)

    assert drain(session) == [{"type": "error", "error": VALIDATION_ERROR}]
    assert session.query_id is None
    assert not session.closed


@pytest.mark.asyncio
async def test_unknown_icom(handler, session):
    await handler.handle_text(session, '{"type": "start", "icom": "attic"}')

    assert drain(session) == [{"type": "error", "error": ICOM_NOT_FOUND}]
    assert session.query_id is None


@pytest.mark.asyncio
async def test_icom_lookup_failure_is_reported(manager, clock):
    async def broken(icom_id: str) -> bool:
        raise ConnectionError("database down")

    handler = LiveSessionHandler(manager, broken, clock)
    session = handler.open(AUTHOR)

    await handler.handle_text(session, '{"type": "start", "icom": "A"}')

    assert drain(session) == [{"type": "error", "error": "icom lookup failed"}]


@pytest.mark.asyncio
async def test_stop_sends_exactly_one_stopped(handler, session, manager):
    await handler.handle_text(session, '{"type": "start", "icom": "A"}')
    query_id = session.query_id
    drain(session)

    await handler.handle_text(session, '{"type": "stop"}')

    assert drain(session) == [{"type": "stopped"}]
    assert manager.store.get(query_id).status == CANCELLED
    assert session.query_id is None


@pytest.mark.asyncio
async def test_stop_without_query_is_acknowledged(handler, session):
    await handler.handle_text(session, '{"type": "stop"}')

    assert drain(session) == [{"type": "stopped"}]


@pytest.mark.asyncio
async def test_restart_cancels_previous_query(handler, session, manager):
    await handler.handle_text(session, '{"type": "start", "icom": "A"}')
    first = session.query_id

    await handler.handle_text(session, '{"type": "start", "icom": "main"}')

    assert manager.store.get(first).status == CANCELLED
    assert session.query_id != first
    assert drain(session) == [{"type": "started"}, {"type": "stopped"}, {"type": "started"}]


@pytest.mark.asyncio
async def test_binary_frames_are_counted_while_playing(handler, session):
    await handler.handle_text(session, '{"type": "start", "icom": "A"}')

    for i in range(30):
        handler.handle_binary(session, bytes([i]) * 10)

    stats = handler.stats(session.query_id)
    assert stats.chunks == 30
    assert stats.bytes == 300
    assert len(stats.buffers) == 24
    assert stats.buffers[0] == bytes([6]) * 10


@pytest.mark.asyncio
async def test_binary_frames_ignored_while_waiting(handler, session, manager, make_query):
    manager.enqueue(make_query(icom="A"))
    await handler.handle_text(session, '{"type": "start", "icom": "A"}')

    handler.handle_binary(session, b"audio")

    assert handler.stats(session.query_id).chunks == 0


def test_binary_frames_without_query_are_ignored(handler, session):
    handler.handle_binary(session, b"audio")

    assert handler.stats("anything") is None


@pytest.mark.asyncio
async def test_close_cancels_query_and_silences_session(handler, session, manager):
    await handler.handle_text(session, '{"type": "start", "icom": "A"}')
    query_id = session.query_id
    drain(session)

    handler.close(session)

    assert manager.store.get(query_id).status == CANCELLED
    assert session.closed
    assert len(handler) == 0
    assert drain(session) == []

    await handler.handle_text(session, '{"type": "start", "icom": "A"}')
    assert session.query_id is None


@pytest.mark.asyncio
async def test_stats_dropped_with_evicted_query(handler, session, manager):
    manager.store.limit = 0
    await handler.handle_text(session, '{"type": "start", "icom": "A"}')
    query_id = session.query_id
    assert handler.stats(query_id) is not None

    await handler.handle_text(session, '{"type": "stop"}')

    assert query_id not in manager.store
    assert handler.stats(query_id) is None


def test_close_all(handler):
    sessions = [handler.open(AUTHOR) for _ in range(3)]

    handler.close_all()

    assert len(handler) == 0
    assert all(s.closed for s in sessions)
