"""Bell settings and school timetable management."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from typing import Any

from bellhub.engine.clock import Clock
from bellhub.engine.errors import InvalidRequestError, NotFoundError
from bellhub.engine.timetable import parse_time_to_seconds
from bellhub.shared.models.school import WEEKDAY_KEYS, BellLesson, ScheduleLesson
from bellhub.shared.repositories.school import SchoolRepository

logger = logging.getLogger(__name__)


def _check_time(value: str, field_name: str) -> None:
    if value and parse_time_to_seconds(value) is None:
        raise InvalidRequestError(f"{field_name} must be HH:MM or HH:MM:SS, got '{value}'")


def _check_lessons(lessons: list[ScheduleLesson] | list[BellLesson]) -> None:
    for lesson in lessons:
        _check_time(lesson.start_at, "start_at")
        _check_time(lesson.end_at, "end_at")


class SchoolService:
    def __init__(self, repo: SchoolRepository, clock: Clock) -> None:
        self.repo = repo
        self.clock = clock

    # ============================================
    # Bells
    # ============================================

    async def get_bells(self) -> dict:
        return asdict(await self.repo.get_bell_settings())

    async def update_bells(
        self,
        *,
        enabled: bool | None = None,
        weekdays: dict[str, bool] | None = None,
        lessons: list[BellLesson] | None = None,
    ) -> dict:
        if weekdays is not None:
            unknown = set(weekdays) - set(WEEKDAY_KEYS)
            if unknown:
                raise InvalidRequestError(f"unknown weekday: {', '.join(sorted(unknown))}")
        if lessons is not None:
            _check_lessons(lessons)
        bells = await self.repo.update_bell_settings(enabled, weekdays, lessons)
        return asdict(bells)

    async def set_lesson_enabled(self, index: int, enabled: bool) -> dict:
        lesson = await self.repo.set_bell_lesson_enabled(index, enabled)
        if lesson is None:
            raise NotFoundError("lesson not found")
        return asdict(lesson)

    # ============================================
    # Schedules
    # ============================================

    async def list_schedules(self) -> list[dict]:
        return [asdict(schedule) for schedule in await self.repo.list_schedules()]

    async def create_schedule(self, name: str, lessons: list[ScheduleLesson]) -> dict:
        _check_lessons(lessons)
        name = name.strip()
        if not name:
            name = f"Schedule {len(await self.repo.list_schedules()) + 1}"
        return asdict(await self.repo.create_schedule(name, lessons))

    async def update_schedule(
        self,
        schedule_id: int,
        *,
        name: str | None = None,
        lessons: list[ScheduleLesson] | None = None,
    ) -> dict:
        if lessons is not None:
            _check_lessons(lessons)
        name = name.strip() if name else None
        schedule = await self.repo.update_schedule(schedule_id, name or None, lessons)
        if schedule is None:
            raise NotFoundError("schedule not found")
        return asdict(schedule)

    async def delete_schedule(self, schedule_id: int) -> dict:
        schedule = await self.repo.delete_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("schedule not found")
        logger.info(f"Schedule {schedule_id} '{schedule.name}' deleted")
        return asdict(schedule)

    async def duplicate_schedule(self, schedule_id: int) -> dict:
        schedule = await self.repo.duplicate_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("schedule not found")
        return asdict(schedule)

    # ============================================
    # Assignments
    # ============================================

    async def _check_schedule_refs(self, weekdays: dict[str, Any]) -> None:
        known = {schedule.id for schedule in await self.repo.list_schedules()}
        for key in WEEKDAY_KEYS:
            schedule_id = weekdays.get(key)
            if schedule_id is not None and schedule_id not in known:
                raise InvalidRequestError(f"{key}: schedule {schedule_id} does not exist")

    async def list_assignments(
        self, start: date | None = None, end: date | None = None
    ) -> list[dict]:
        if start is None or end is None:
            assignments = await self.repo.list_assignments()
        else:
            assignments = await self.repo.find_assignments(start, end)
        return [asdict(assignment) for assignment in assignments]

    async def get_active_assignment(self, at: date | None = None) -> dict | None:
        assignment = await self.repo.get_active_assignment(at or self.clock.now().date())
        return asdict(assignment) if assignment else None

    async def create_assignment(self, start_date: date, weekdays: dict[str, int | None]) -> dict:
        await self._check_schedule_refs(weekdays)
        return asdict(await self.repo.create_assignment(start_date, weekdays))

    async def update_assignment(self, assignment_id: int, changes: dict[str, Any]) -> dict:
        if "start_date" in changes and changes["start_date"] is None:
            raise InvalidRequestError("start_date cannot be cleared")
        await self._check_schedule_refs(changes)
        assignment = await self.repo.update_assignment(assignment_id, changes)
        if assignment is None:
            raise NotFoundError("assignment not found")
        return asdict(assignment)

    async def delete_assignment(self, assignment_id: int) -> dict:
        assignment = await self.repo.delete_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("assignment not found")
        return asdict(assignment)

    # ============================================
    # Overrides
    # ============================================

    async def list_overrides(
        self, start: date | None = None, end: date | None = None
    ) -> list[dict]:
        if start is None or end is None:
            overrides = await self.repo.list_overrides()
        else:
            overrides = await self.repo.find_overrides(start, end)
        return [asdict(override) for override in overrides]

    async def set_overrides(
        self,
        at: date,
        end_date: date | None,
        *,
        mute_all_lessons: bool,
        mute_lessons: list[int],
    ) -> int:
        if any(index < 0 for index in mute_lessons):
            raise InvalidRequestError("mute_lessons must be non-negative lesson indexes")
        updated = await self.repo.set_overrides(
            at, end_date or at, mute_all_lessons, sorted(set(mute_lessons))
        )
        logger.info(f"Overrides set for {updated} day(s) from {at}")
        return updated
