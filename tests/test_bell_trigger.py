"""Bell trigger windows, filters and de-duplication."""

import dataclasses
from datetime import date, datetime, timedelta

import pytest

from bellhub.engine.bell_trigger import BellTrigger
from bellhub.engine.models import SCHEDULER_AUTHOR
from bellhub.engine.timetable import BellSnapshot
from bellhub.shared.models.icom import Icom, Sound
from bellhub.shared.models.school import (
    BellLesson,
    BellSettings,
    Schedule,
    ScheduleAssignment,
    ScheduleLesson,
    ScheduleOverride,
)
from tests.conftest import StaticSnapshotSource

MONDAY = date(2026, 9, 7)
SATURDAY = date(2026, 9, 12)


def at(day: date, clock_time: str) -> datetime:
    hours, minutes, seconds = (int(part) for part in clock_time.split(":"))
    return datetime(day.year, day.month, day.day, hours, minutes, seconds)


@pytest.fixture
def snapshot() -> BellSnapshot:
    schedule = Schedule(
        id=1,
        name="Regular",
        lessons=[
            ScheduleLesson("08:00", "08:45", start_sound="start0.mp3", end_sound="end0.mp3"),
            ScheduleLesson("09:00", "09:45", start_sound="start1.mp3", end_sound="end1.mp3"),
        ],
    )
    assignment = ScheduleAssignment(
        id=1,
        start_date=date(2026, 9, 1),
        monday=1,
        tuesday=1,
        wednesday=1,
        thursday=1,
        friday=1,
        saturday=1,
    )
    return BellSnapshot(
        bells=BellSettings(),
        schedules=[schedule],
        assignments=[assignment],
        icoms=[Icom("hall", "Hall"), Icom("main", "Main hall")],
        sounds=[Sound("start0.mp3", duration=4.0)],
    )


@pytest.fixture
def source(snapshot) -> StaticSnapshotSource:
    return StaticSnapshotSource(snapshot)


@pytest.fixture
def trigger(manager, source, clock) -> BellTrigger:
    return BellTrigger(manager, source, clock, catch_up_seconds=300, priority=1)


def test_fires_edge_inside_window(trigger, snapshot, manager):
    trigger.reset(at(MONDAY, "07:59:00"))

    fired = trigger.process_tick(at(MONDAY, "08:00:01"), snapshot)

    assert len(fired) == 1
    query = fired[0]
    assert query.sound_name == "start0.mp3"
    assert query.icom == "main"
    assert query.priority == 1
    assert query.force is False
    assert query.author == SCHEDULER_AUTHOR
    assert query.duration == 4.0
    assert manager.store.get(query.id) is query


def test_scheduler_author_cannot_be_mutated_through_a_query(trigger, snapshot):
    trigger.reset(at(MONDAY, "07:59:00"))
    query = trigger.process_tick(at(MONDAY, "08:00:01"), snapshot)[0]

    with pytest.raises(dataclasses.FrozenInstanceError):
        query.author.name = "someone else"
    assert SCHEDULER_AUTHOR.name == "scheduler"


def test_same_edge_never_fires_twice_in_a_day(trigger, snapshot):
    trigger.reset(at(MONDAY, "07:59:00"))

    first = trigger.process_tick(at(MONDAY, "08:00:01"), snapshot)
    # Clock stepped back, then forward again over the same edge
    trigger.process_tick(at(MONDAY, "07:59:59"), snapshot)
    second = trigger.process_tick(at(MONDAY, "08:00:05"), snapshot)

    assert len(first) == 1
    assert second == []
    assert len(trigger.fired_keys) == 1


def test_late_tick_within_catch_up_still_fires(trigger, snapshot):
    trigger.reset(at(MONDAY, "07:59:00"))

    fired = trigger.process_tick(at(MONDAY, "08:03:00"), snapshot)

    assert [q.sound_name for q in fired] == ["start0.mp3"]


def test_event_older_than_catch_up_is_dropped(trigger, snapshot):
    trigger.reset(at(MONDAY, "07:00:00"))

    fired = trigger.process_tick(at(MONDAY, "08:10:00"), snapshot)

    assert fired == []
    assert trigger.fired_keys == frozenset()


def test_first_tick_after_start_does_not_replay_past_edges(trigger, snapshot):
    trigger.reset(at(MONDAY, "08:00:30"))

    assert trigger.process_tick(at(MONDAY, "08:00:31"), snapshot) == []


def test_disabled_weekday_fires_nothing(trigger, snapshot):
    trigger.reset(at(SATURDAY, "07:00:00"))

    fired = trigger.process_tick(at(SATURDAY, "08:00:01"), snapshot)

    assert fired == []


def test_global_switch_off_fires_nothing(trigger, snapshot):
    snapshot.bells.enabled = False
    trigger.reset(at(MONDAY, "07:59:00"))

    assert trigger.process_tick(at(MONDAY, "08:00:01"), snapshot) == []


def test_muted_lesson_is_skipped(snapshot, manager, source, clock):
    snapshot.overrides = [ScheduleOverride(id=1, at=MONDAY, mute_lessons=[1])]
    trigger = BellTrigger(manager, source, clock, catch_up_seconds=4 * 3600)
    trigger.reset(at(MONDAY, "07:00:00"))

    fired = trigger.process_tick(at(MONDAY, "10:00:00"), snapshot)

    assert [q.sound_name for q in fired] == ["start0.mp3", "end0.mp3"]


def test_mute_all_lessons(trigger, snapshot):
    snapshot.overrides = [ScheduleOverride(id=1, at=MONDAY, mute_all_lessons=True)]
    trigger.reset(at(MONDAY, "07:59:00"))

    assert trigger.process_tick(at(MONDAY, "08:00:01"), snapshot) == []


def test_disabled_bell_lesson_and_fallback_sound(trigger, snapshot):
    snapshot.bells.lessons = [BellLesson(enabled=False), BellLesson(start_sound="fallback.mp3")]
    snapshot.schedules[0].lessons[1].start_sound = ""
    trigger.reset(at(MONDAY, "07:59:00"))

    assert trigger.process_tick(at(MONDAY, "08:00:01"), snapshot) == []
    fired = trigger.process_tick(at(MONDAY, "09:00:01"), snapshot)

    assert [q.sound_name for q in fired] == ["fallback.mp3"]


def test_malformed_lesson_time_is_skipped(trigger, snapshot):
    snapshot.schedules[0].lessons[0].start_at = "8 o'clock"
    trigger.reset(at(MONDAY, "07:59:00"))

    assert trigger.process_tick(at(MONDAY, "08:00:01"), snapshot) == []


def test_no_icom_does_not_mark_edge_fired(trigger, snapshot):
    snapshot.icoms = []
    trigger.reset(at(MONDAY, "07:59:00"))

    assert trigger.process_tick(at(MONDAY, "08:00:01"), snapshot) == []
    assert trigger.fired_keys == frozenset()


def test_day_change_resets_fired_edges(trigger, snapshot):
    trigger.reset(at(MONDAY, "07:59:00"))
    trigger.process_tick(at(MONDAY, "08:00:01"), snapshot)

    tuesday = MONDAY + timedelta(days=1)
    fired = trigger.process_tick(at(tuesday, "08:00:01"), snapshot)

    assert len(fired) == 1
    assert all(key.startswith(tuesday.isoformat()) for key in trigger.fired_keys)


@pytest.mark.asyncio
async def test_failed_load_skips_tick_without_losing_window(trigger, source, clock):
    trigger.reset(at(MONDAY, "07:59:00"))
    source.error = ConnectionError("database down")
    clock.set(at(MONDAY, "08:00:01"))

    assert await trigger.tick() == []

    source.error = None
    clock.set(at(MONDAY, "08:00:02"))
    fired = await trigger.tick()

    assert [q.sound_name for q in fired] == ["start0.mp3"]
    assert source.loads == 2
