"""Data models for the school timetable and bell settings tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

WEEKDAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass
class ScheduleLesson:
    """One lesson window of a schedule. Times are 'HH:MM' or 'HH:MM:SS'."""

    start_at: str
    end_at: str
    start_sound: str = ""
    end_sound: str = ""


@dataclass
class Schedule:
    """Named ordered list of lessons."""

    id: int
    name: str
    lessons: list[ScheduleLesson] = field(default_factory=list)


@dataclass
class ScheduleAssignment:
    """Weekday -> schedule mapping in effect from ``start_date`` on."""

    id: int
    start_date: date
    monday: int | None = None
    tuesday: int | None = None
    wednesday: int | None = None
    thursday: int | None = None
    friday: int | None = None
    saturday: int | None = None
    sunday: int | None = None

    def schedule_id_for(self, weekday_key: str) -> int | None:
        return getattr(self, weekday_key)


@dataclass
class ScheduleOverride:
    """Per-date muting of all or some lessons."""

    id: int
    at: date
    mute_all_lessons: bool = False
    mute_lessons: list[int] = field(default_factory=list)


@dataclass
class BellLesson:
    """Global bell configuration for one lesson index."""

    enabled: bool = True
    start_at: str = ""
    end_at: str = ""
    start_sound: str | None = None
    end_sound: str | None = None


@dataclass
class BellSettings:
    """Global bell switch, weekday switches and per-lesson fallbacks."""

    enabled: bool = True
    weekdays: dict[str, bool] = field(
        default_factory=lambda: {key: key not in ("saturday", "sunday") for key in WEEKDAY_KEYS}
    )
    lessons: list[BellLesson] = field(default_factory=list)
    updated_at: datetime | None = None

    def weekday_enabled(self, weekday_key: str) -> bool:
        return self.weekdays.get(weekday_key, True) is not False
