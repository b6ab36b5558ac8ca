"""Repository for the school timetable and bell settings tables.

Lessons are stored as JSONB arrays; malformed entries are kept with empty
fields so the bell trigger can skip them instead of failing the whole read.
Every write invalidates the cached reads it affects, so the next bell tick
sees the change.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import date, timedelta
from typing import Any

import asyncpg

from bellhub.engine.timetable import BellSnapshot, active_assignment
from bellhub.shared.cache import AsyncTTLCache, cached
from bellhub.shared.models.school import (
    WEEKDAY_KEYS,
    BellLesson,
    BellSettings,
    Schedule,
    ScheduleAssignment,
    ScheduleLesson,
    ScheduleOverride,
)
from bellhub.shared.repositories.icom import IcomRepository, SoundRepository

logger = logging.getLogger(__name__)

_SCHEDULE_COLUMNS = "id, name, lessons"
_ASSIGNMENT_COLUMNS = "id, start_date, " + ", ".join(WEEKDAY_KEYS)
_OVERRIDE_COLUMNS = "id, at, mute_all_lessons, mute_lessons"
_BELL_COLUMNS = "enabled, weekdays, lessons, updated_at"

SCHEDULES_KEY = "school:schedules"
ASSIGNMENTS_KEY = "school:assignments"
OVERRIDES_KEY = "school:overrides"
BELLS_KEY = "school:bells"

_school_cache = AsyncTTLCache("school", maxsize=8, ttl=30)


def _load_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("Ignoring malformed JSON column value")
            return default
    return value


def _dump_lessons(lessons: list[ScheduleLesson] | list[BellLesson]) -> str:
    return json.dumps([asdict(lesson) for lesson in lessons])


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _schedule_lesson(raw: Any) -> ScheduleLesson:
    raw = raw if isinstance(raw, dict) else {}
    return ScheduleLesson(
        start_at=_text(raw.get("start_at")),
        end_at=_text(raw.get("end_at")),
        start_sound=_text(raw.get("start_sound")),
        end_sound=_text(raw.get("end_sound")),
    )


def _bell_lesson(raw: Any) -> BellLesson:
    raw = raw if isinstance(raw, dict) else {}
    return BellLesson(
        enabled=raw.get("enabled") is not False,
        start_at=_text(raw.get("start_at")),
        end_at=_text(raw.get("end_at")),
        start_sound=raw.get("start_sound") or None,
        end_sound=raw.get("end_sound") or None,
    )


def _schedule(row: Any) -> Schedule:
    return Schedule(
        id=row["id"],
        name=row["name"],
        lessons=[_schedule_lesson(item) for item in _load_json(row["lessons"], [])],
    )


def _override(row: Any) -> ScheduleOverride:
    return ScheduleOverride(
        id=row["id"],
        at=row["at"],
        mute_all_lessons=row["mute_all_lessons"],
        mute_lessons=list(row["mute_lessons"] or []),
    )


def _bell_settings(row: Any) -> BellSettings:
    weekdays = _load_json(row["weekdays"], {})
    return BellSettings(
        enabled=row["enabled"],
        weekdays={key: weekdays.get(key) is not False for key in WEEKDAY_KEYS},
        lessons=[_bell_lesson(item) for item in _load_json(row["lessons"], [])],
        updated_at=row["updated_at"],
    )


class SchoolRepository:
    """Schedules, assignments, overrides and bell settings."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ============================================
    # Schedules
    # ============================================

    @cached(_school_cache, SCHEDULES_KEY)
    async def list_schedules(self) -> list[Schedule]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {_SCHEDULE_COLUMNS} FROM schedules ORDER BY id")
            return [_schedule(row) for row in rows]

    async def get_schedule(self, schedule_id: int) -> Schedule | None:
        for schedule in await self.list_schedules():
            if schedule.id == schedule_id:
                return schedule
        return None

    async def create_schedule(self, name: str, lessons: list[ScheduleLesson]) -> Schedule:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO schedules (name, lessons) VALUES ($1, $2::jsonb)
                RETURNING {_SCHEDULE_COLUMNS}
                """,
                name,
                _dump_lessons(lessons),
            )
        _school_cache.invalidate(SCHEDULES_KEY)
        return _schedule(row)

    async def update_schedule(
        self,
        schedule_id: int,
        name: str | None = None,
        lessons: list[ScheduleLesson] | None = None,
    ) -> Schedule | None:
        """Partial update. Returns None when the schedule does not exist."""
        updates: list[str] = []
        values: list[Any] = []
        idx = 1

        if name is not None:
            updates.append(f"name = ${idx}")
            values.append(name)
            idx += 1
        if lessons is not None:
            updates.append(f"lessons = ${idx}::jsonb")
            values.append(_dump_lessons(lessons))
            idx += 1

        if not updates:
            return await self.get_schedule(schedule_id)

        values.append(schedule_id)
        query = (
            f"UPDATE schedules SET {', '.join(updates)} "
            f"WHERE id = ${idx} RETURNING {_SCHEDULE_COLUMNS}"
        )
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *values)
        _school_cache.invalidate(SCHEDULES_KEY)
        return _schedule(row) if row else None

    async def delete_schedule(self, schedule_id: int) -> Schedule | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"DELETE FROM schedules WHERE id = $1 RETURNING {_SCHEDULE_COLUMNS}",
                schedule_id,
            )
        # Assignments referencing the schedule are nulled by the foreign key
        _school_cache.invalidate(SCHEDULES_KEY, ASSIGNMENTS_KEY)
        return _schedule(row) if row else None

    async def duplicate_schedule(self, schedule_id: int) -> Schedule | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO schedules (name, lessons)
                SELECT name || ' (copy)', lessons FROM schedules WHERE id = $1
                RETURNING {_SCHEDULE_COLUMNS}
                """,
                schedule_id,
            )
        _school_cache.invalidate(SCHEDULES_KEY)
        return _schedule(row) if row else None

    # ============================================
    # Assignments
    # ============================================

    @cached(_school_cache, ASSIGNMENTS_KEY)
    async def list_assignments(self) -> list[ScheduleAssignment]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_ASSIGNMENT_COLUMNS} FROM schedule_assignments ORDER BY start_date, id"
            )
            return [ScheduleAssignment(**dict(row)) for row in rows]

    async def find_assignments(self, start: date, end: date) -> list[ScheduleAssignment]:
        return [a for a in await self.list_assignments() if start <= a.start_date <= end]

    async def get_active_assignment(self, at: date) -> ScheduleAssignment | None:
        return active_assignment(await self.list_assignments(), at)

    async def create_assignment(
        self, start_date: date, weekdays: dict[str, int | None]
    ) -> ScheduleAssignment:
        columns = ["start_date", *WEEKDAY_KEYS]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"INSERT INTO schedule_assignments ({', '.join(columns)}) "
                f"VALUES ({placeholders}) RETURNING {_ASSIGNMENT_COLUMNS}",
                start_date,
                *(weekdays.get(key) for key in WEEKDAY_KEYS),
            )
        _school_cache.invalidate(ASSIGNMENTS_KEY)
        return ScheduleAssignment(**dict(row))

    async def update_assignment(
        self, assignment_id: int, changes: dict[str, Any]
    ) -> ScheduleAssignment | None:
        """Apply ``changes`` (start_date and/or weekday columns, None clears a day)."""
        updates: list[str] = []
        values: list[Any] = []
        idx = 1

        for column in ("start_date", *WEEKDAY_KEYS):
            if column in changes:
                updates.append(f"{column} = ${idx}")
                values.append(changes[column])
                idx += 1

        if not updates:
            for assignment in await self.list_assignments():
                if assignment.id == assignment_id:
                    return assignment
            return None

        values.append(assignment_id)
        query = (
            f"UPDATE schedule_assignments SET {', '.join(updates)} "
            f"WHERE id = ${idx} RETURNING {_ASSIGNMENT_COLUMNS}"
        )
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *values)
        _school_cache.invalidate(ASSIGNMENTS_KEY)
        return ScheduleAssignment(**dict(row)) if row else None

    async def delete_assignment(self, assignment_id: int) -> ScheduleAssignment | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"DELETE FROM schedule_assignments WHERE id = $1 RETURNING {_ASSIGNMENT_COLUMNS}",
                assignment_id,
            )
        _school_cache.invalidate(ASSIGNMENTS_KEY)
        return ScheduleAssignment(**dict(row)) if row else None

    # ============================================
    # Overrides
    # ============================================

    @cached(_school_cache, OVERRIDES_KEY)
    async def list_overrides(self) -> list[ScheduleOverride]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_OVERRIDE_COLUMNS} FROM schedule_overrides ORDER BY at, id"
            )
            return [_override(row) for row in rows]

    async def find_overrides(self, start: date, end: date) -> list[ScheduleOverride]:
        return [o for o in await self.list_overrides() if start <= o.at <= end]

    async def set_overrides(
        self,
        start: date,
        end: date,
        mute_all_lessons: bool,
        mute_lessons: list[int],
    ) -> int:
        """Replace the override of every day in ``start..end``. Returns the day count."""
        if end < start:
            start, end = end, start
        days = [start + timedelta(days=n) for n in range((end - start).days + 1)]

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for day in days:
                    await conn.execute("DELETE FROM schedule_overrides WHERE at = $1", day)
                    await conn.execute(
                        "INSERT INTO schedule_overrides (at, mute_all_lessons, mute_lessons) "
                        "VALUES ($1, $2, $3)",
                        day,
                        mute_all_lessons,
                        mute_lessons,
                    )
        _school_cache.invalidate(OVERRIDES_KEY)
        return len(days)

    # ============================================
    # Bell settings
    # ============================================

    @cached(_school_cache, BELLS_KEY)
    async def get_bell_settings(self) -> BellSettings:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_BELL_COLUMNS} FROM bell_settings WHERE id = 1")
            if not row:
                return BellSettings()
            return _bell_settings(row)

    async def update_bell_settings(
        self,
        enabled: bool | None = None,
        weekdays: dict[str, bool] | None = None,
        lessons: list[BellLesson] | None = None,
    ) -> BellSettings:
        """Partial update; ``weekdays`` is merged into the stored switches."""
        updates: list[str] = []
        values: list[Any] = []
        idx = 1

        if enabled is not None:
            updates.append(f"enabled = ${idx}")
            values.append(enabled)
            idx += 1
        if weekdays is not None:
            updates.append(f"weekdays = weekdays || ${idx}::jsonb")
            values.append(json.dumps(weekdays))
            idx += 1
        if lessons is not None:
            updates.append(f"lessons = ${idx}::jsonb")
            values.append(_dump_lessons(lessons))
            idx += 1

        if not updates:
            return await self.get_bell_settings()

        query = (
            f"UPDATE bell_settings SET {', '.join(updates)}, updated_at = NOW() "
            f"WHERE id = 1 RETURNING {_BELL_COLUMNS}"
        )
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *values)
        _school_cache.invalidate(BELLS_KEY)
        return _bell_settings(row) if row else BellSettings()

    async def set_bell_lesson_enabled(self, index: int, enabled: bool) -> BellLesson | None:
        """Toggle one global lesson. Returns None when ``index`` is out of range."""
        if index < 0:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE bell_settings
                SET lessons = jsonb_set(
                        lessons, ARRAY[$1::int::text, 'enabled'], to_jsonb($2::boolean)
                    ),
                    updated_at = NOW()
                WHERE id = 1 AND $1 < jsonb_array_length(lessons)
                RETURNING {_BELL_COLUMNS}
                """,
                index,
                enabled,
            )
        if row is None:
            return None
        _school_cache.invalidate(BELLS_KEY)
        return _bell_settings(row).lessons[index]


class TimetableRepository:
    """Builds the bell trigger snapshot from the cached repositories."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.school = SchoolRepository(pool)
        self.icoms = IcomRepository(pool)
        self.sounds = SoundRepository(pool)

    async def load_snapshot(self) -> BellSnapshot:
        return BellSnapshot(
            bells=await self.school.get_bell_settings(),
            schedules=await self.school.list_schedules(),
            assignments=await self.school.list_assignments(),
            overrides=await self.school.list_overrides(),
            icoms=await self.icoms.list_all(),
            sounds=await self.sounds.list_all(),
        )
