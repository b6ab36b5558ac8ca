"""Timetable resolution used by the bell trigger.

Everything here is pure: given a snapshot of the timetable data and a date it
answers which schedule applies, which lessons are muted and what sound an
edge plays. Bad records resolve to ``None`` so callers can skip them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date

from bellhub.shared.models.icom import Icom, Sound
from bellhub.shared.models.school import (
    WEEKDAY_KEYS,
    BellSettings,
    Schedule,
    ScheduleAssignment,
    ScheduleLesson,
    ScheduleOverride,
)

EDGES = ("start", "end")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


@dataclass
class BellSnapshot:
    """Read-only view of everything the bell trigger needs for one tick."""

    bells: BellSettings = field(default_factory=BellSettings)
    schedules: list[Schedule] = field(default_factory=list)
    assignments: list[ScheduleAssignment] = field(default_factory=list)
    overrides: list[ScheduleOverride] = field(default_factory=list)
    icoms: list[Icom] = field(default_factory=list)
    sounds: list[Sound] = field(default_factory=list)

    def sound_duration(self, sound_name: str) -> float | None:
        for sound in self.sounds:
            if sound.name == sound_name:
                return sound.duration
        return None


@dataclass
class MuteState:
    mute_all: bool = False
    muted_lessons: set[int] = field(default_factory=set)


def weekday_key(day: date) -> str:
    return WEEKDAY_KEYS[day.weekday()]


def parse_time_to_seconds(value: object) -> int | None:
    """'HH:MM[:SS]' -> seconds of day, or None when malformed."""
    if not isinstance(value, str):
        return None
    m = _TIME_RE.match(value.strip())
    if not m:
        return None
    hours, minutes, seconds = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        return None
    return hours * 3600 + minutes * 60 + seconds


def active_assignment(
    assignments: list[ScheduleAssignment], day: date
) -> ScheduleAssignment | None:
    """Most recent assignment whose start date is on or before ``day``."""
    active: ScheduleAssignment | None = None
    for assignment in sorted(assignments, key=lambda a: a.start_date):
        if assignment.start_date > day:
            break
        active = assignment
    return active


def schedule_for_date(snapshot: BellSnapshot, day: date) -> Schedule | None:
    assignment = active_assignment(snapshot.assignments, day)
    if assignment is None:
        return None
    schedule_id = assignment.schedule_id_for(weekday_key(day))
    if schedule_id is None:
        return None
    for schedule in snapshot.schedules:
        if schedule.id == schedule_id:
            return schedule
    return None


def mute_state_for_date(overrides: list[ScheduleOverride], day: date) -> MuteState:
    state = MuteState()
    for override in overrides:
        if override.at != day:
            continue
        if override.mute_all_lessons:
            state.mute_all = True
        for index in override.mute_lessons or []:
            if isinstance(index, int) and index >= 0:
                state.muted_lessons.add(index)
    return state


def resolve_edge_sound(
    bells: BellSettings, lesson: ScheduleLesson, lesson_index: int, edge: str
) -> str | None:
    """Sound for a lesson edge: the schedule's own, else the bell settings fallback.

    Returns None when the lesson is disabled in the bell settings or no
    sound is configured at all.
    """
    bell_lesson = bells.lessons[lesson_index] if lesson_index < len(bells.lessons) else None
    if bell_lesson is not None and bell_lesson.enabled is False:
        return None

    if edge == "start":
        own, fallback = lesson.start_sound, bell_lesson.start_sound if bell_lesson else None
    else:
        own, fallback = lesson.end_sound, bell_lesson.end_sound if bell_lesson else None
    selected = (own or fallback or "").strip()
    return selected or None


def edge_time(lesson: ScheduleLesson, edge: str) -> int | None:
    return parse_time_to_seconds(lesson.start_at if edge == "start" else lesson.end_at)


def target_icom(icoms: list[Icom]) -> str | None:
    """'main' if it exists, else the first icom."""
    if not icoms:
        return None
    for icom in icoms:
        if icom.id == "main":
            return icom.id
    return icoms[0].id
