"""Runtime wiring on a real event loop."""

import asyncio

import pytest

from bellhub.engine.models import CANCELLED, KIND_SOUND, Query
from bellhub.engine.playback import NullPlayback
from bellhub.engine.runtime import DispatchRuntime
from tests.conftest import FakeClock, StaticSnapshotSource


async def _always(icom_id: str) -> bool:
    return True


@pytest.mark.asyncio
async def test_loop_timers_finish_queries():
    clock = FakeClock()
    runtime = DispatchRuntime(
        playback=NullPlayback(),
        snapshot_source=StaticSnapshotSource(),
        icom_exists=_always,
        clock=clock,
    )
    now = clock.now()
    query = runtime.queues.enqueue(
        Query(
            id="q",
            kind=KIND_SOUND,
            icom="main",
            priority=0,
            force=False,
            created_at=now,
            updated_at=now,
            duration=0.01,
            sound_name="bell.mp3",
        )
    )

    await asyncio.sleep(0.7)

    assert query.status == "finished"


@pytest.mark.asyncio
async def test_start_and_shutdown():
    source = StaticSnapshotSource()
    runtime = DispatchRuntime(
        playback=NullPlayback(),
        snapshot_source=source,
        icom_exists=_always,
        clock=FakeClock(),
        tick_seconds=0.01,
    )
    session = runtime.sessions.open(None)
    await runtime.sessions.handle_text(session, '{"type": "start", "icom": "main"}')
    query = runtime.store.get(session.query_id)

    runtime.start()
    await asyncio.sleep(0.05)
    await runtime.shutdown()

    assert source.loads > 0
    assert query.status == CANCELLED
    assert session.closed
