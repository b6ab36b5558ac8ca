"""Admission, ordering and preemption on per-icom queues."""

import pytest

from bellhub.engine.errors import ConflictError, NotFoundError
from bellhub.engine.models import CANCELLED, FINISHED, PLAYING, WAITING
from tests.conftest import RecordingObserver


def _playing_count(manager, icom):
    return sum(1 for q in manager.store if q.icom == icom and q.status == PLAYING)


def test_idle_icom_starts_immediately(manager, make_query, playback):
    query = manager.enqueue(make_query(priority=1))

    assert query.status == PLAYING
    assert manager.queue("A").playing_id == query.id
    assert playback.calls[0].handle.sound_name == "bell.mp3"


def test_waiting_line_orders_by_priority_then_arrival(manager, make_query):
    manager.enqueue(make_query(query_id="current"))
    for query_id, priority in [("a", 1), ("b", 5), ("c", 5), ("d", 3), ("e", 5), ("f", -2)]:
        manager.enqueue(make_query(query_id=query_id, priority=priority))

    assert manager.queue("A").waiting == ["b", "c", "e", "d", "a", "f"]
    assert all(manager.store.get(i).status == WAITING for i in manager.queue("A").waiting)


def test_icoms_are_independent(manager, make_query):
    a = manager.enqueue(make_query(icom="A"))
    b = manager.enqueue(make_query(icom="B"))

    assert a.status == PLAYING
    assert b.status == PLAYING
    assert manager.active_count() == 2


def test_force_preempts_and_keeps_waiting_line(manager, make_query, timers):
    p1 = manager.enqueue(make_query(query_id="P1", priority=1))
    assert p1.status == PLAYING

    p2 = manager.enqueue(make_query(query_id="P2", priority=5))
    assert p2.status == WAITING
    assert manager.queue("A").waiting == ["P2"]

    p3 = manager.enqueue(make_query(query_id="P3", priority=0, force=True))
    assert p1.status == CANCELLED
    assert p3.status == PLAYING
    assert manager.queue("A").waiting == ["P2"]

    manager.finish("P3")
    assert p3.status == FINISHED
    assert p2.status == PLAYING
    assert _playing_count(manager, "A") == 1


def test_force_cancels_old_before_new_plays(manager, make_query):
    log: list[tuple[str, str]] = []
    old = make_query(query_id="old")
    new = make_query(query_id="new", force=True)
    manager.lifecycle.subscribe("old", RecordingObserver(log))
    manager.lifecycle.subscribe("new", RecordingObserver(log))

    manager.enqueue(old)
    manager.enqueue(new)

    assert log == [("playing", "old"), (CANCELLED, "old"), ("playing", "new")]


def test_force_on_idle_icom_just_starts(manager, make_query):
    query = manager.enqueue(make_query(force=True))

    assert query.status == PLAYING


def test_lower_priority_force_does_not_jump_waiting_line_once_idle(manager, make_query):
    manager.enqueue(make_query(query_id="P1"))
    manager.enqueue(make_query(query_id="P2", priority=10))
    forced = manager.enqueue(make_query(query_id="F", priority=-5, force=True))
    assert forced.status == PLAYING

    manager.cancel("F")

    assert manager.store.get("P2").status == PLAYING


def test_cancel_waiting_query_removes_it(manager, make_query):
    manager.enqueue(make_query(query_id="P1"))
    manager.enqueue(make_query(query_id="P2"))
    manager.enqueue(make_query(query_id="P3"))

    cancelled = manager.cancel("P2")

    assert cancelled.status == CANCELLED
    assert manager.queue("A").waiting == ["P3"]
    assert manager.store.get("P1").status == PLAYING


def test_cancel_playing_advances(manager, make_query, playback):
    manager.enqueue(make_query(query_id="P1"))
    manager.enqueue(make_query(query_id="P2"))

    manager.cancel("P1")

    assert "P1" in playback.stopped
    assert manager.store.get("P2").status == PLAYING


def test_terminal_queries_never_change(manager, make_query):
    manager.enqueue(make_query(query_id="P1"))
    manager.finish("P1")
    finished_at = manager.store.get("P1").updated_at

    again = manager.cancel("P1")

    assert again.status == FINISHED
    assert again.updated_at == finished_at


def test_finish_ignores_waiting_queries(manager, make_query):
    manager.enqueue(make_query(query_id="P1"))
    waiting = manager.enqueue(make_query(query_id="P2"))

    assert manager.finish("P2") is waiting
    assert waiting.status == WAITING


def test_unknown_query_raises(manager):
    with pytest.raises(NotFoundError):
        manager.cancel("missing")
    with pytest.raises(NotFoundError):
        manager.finish("missing")


def test_icom_state_lists_playing_and_waiting(manager, make_query):
    manager.enqueue(make_query(query_id="P1"))
    manager.enqueue(make_query(query_id="P2", priority=2))
    manager.enqueue(make_query(query_id="P3", priority=4))

    playing, waiting = manager.icom_state("A")

    assert playing.id == "P1"
    assert [q.id for q in waiting] == ["P3", "P2"]
    assert manager.icom_state("unused") == (None, [])


def test_at_most_one_playing_through_churn(manager, make_query, timers):
    for i in range(6):
        manager.enqueue(make_query(query_id=f"q{i}", priority=i % 3, force=(i == 4)))
        assert _playing_count(manager, "A") == 1
    while manager.active_count():
        timers.fire_all()
        assert _playing_count(manager, "A") <= 1


def test_duplicate_query_id_is_rejected(manager, make_query):
    manager.enqueue(make_query(query_id="dup"))

    with pytest.raises(ConflictError):
        manager.enqueue(make_query(query_id="dup", force=True))
    assert manager.store.get("dup").status == PLAYING
