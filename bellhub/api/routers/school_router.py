"""School timetable API routes: schedules, assignments and overrides."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from bellhub.api.core.dependencies import get_current_identity, get_school_service
from bellhub.api.services import Identity, SchoolService
from bellhub.engine.errors import InvalidRequestError, NotFoundError
from bellhub.shared.models.school import ScheduleLesson

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/school", tags=["school"])


# ============================================
# Request / Response Models
# ============================================


class ScheduleLessonModel(BaseModel):
    start_at: str
    start_sound: str = ""
    end_at: str
    end_sound: str = ""


class ScheduleResponse(BaseModel):
    id: int
    name: str
    lessons: list[ScheduleLessonModel]


class ScheduleCreate(BaseModel):
    name: str = ""
    lessons: list[ScheduleLessonModel] = Field(default_factory=list)


class ScheduleUpdate(BaseModel):
    name: str | None = None
    lessons: list[ScheduleLessonModel] | None = None


class AssignmentWeekdays(BaseModel):
    monday: int | None = None
    tuesday: int | None = None
    wednesday: int | None = None
    thursday: int | None = None
    friday: int | None = None
    saturday: int | None = None
    sunday: int | None = None


class AssignmentResponse(AssignmentWeekdays):
    id: int
    start_date: date


class AssignmentCreate(AssignmentWeekdays):
    start_date: date


class AssignmentUpdate(AssignmentWeekdays):
    start_date: date | None = None


class OverrideResponse(BaseModel):
    id: int
    at: date
    mute_all_lessons: bool
    mute_lessons: list[int]


class OverrideCreate(BaseModel):
    at: date
    mute_all_lessons: bool = False
    mute_lessons: list[int] = Field(default_factory=list)


class OverridesResult(BaseModel):
    ok: bool = True
    updated: int


def _lessons(models: list[ScheduleLessonModel]) -> list[ScheduleLesson]:
    return [ScheduleLesson(**model.model_dump()) for model in models]


# ============================================
# Schedules
# ============================================


@router.get("/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> list[ScheduleResponse]:
    return [ScheduleResponse(**s) for s in await service.list_schedules()]


@router.post("/schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    body: ScheduleCreate,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> ScheduleResponse:
    try:
        schedule = await service.create_schedule(body.name, _lessons(body.lessons))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return ScheduleResponse(**schedule)


@router.patch("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    body: ScheduleUpdate,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> ScheduleResponse:
    try:
        schedule = await service.update_schedule(
            schedule_id,
            name=body.name,
            lessons=_lessons(body.lessons) if body.lessons is not None else None,
        )
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    return ScheduleResponse(**schedule)


@router.delete("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def delete_schedule(
    schedule_id: int,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> ScheduleResponse:
    try:
        return ScheduleResponse(**await service.delete_schedule(schedule_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.post("/schedules/{schedule_id}/duplicate", response_model=ScheduleResponse, status_code=201)
async def duplicate_schedule(
    schedule_id: int,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> ScheduleResponse:
    try:
        return ScheduleResponse(**await service.duplicate_schedule(schedule_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


# ============================================
# Assignments
# ============================================


@router.get("/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    start_date: date | None = None,
    end_date: date | None = None,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> list[AssignmentResponse]:
    """All assignments, or those starting within ``start_date..end_date``."""
    return [AssignmentResponse(**a) for a in await service.list_assignments(start_date, end_date)]


@router.get("/assignments/active", response_model=AssignmentResponse | None)
async def get_active_assignment(
    at: date | None = None,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> AssignmentResponse | None:
    """Assignment in effect on ``at`` (default today)."""
    assignment = await service.get_active_assignment(at)
    return AssignmentResponse(**assignment) if assignment else None


@router.post("/assignments", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    body: AssignmentCreate,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> AssignmentResponse:
    weekdays = body.model_dump(exclude={"start_date"})
    try:
        assignment = await service.create_assignment(body.start_date, weekdays)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return AssignmentResponse(**assignment)


@router.patch("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: int,
    body: AssignmentUpdate,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> AssignmentResponse:
    """Only the fields present in the body change; ``null`` clears a weekday."""
    try:
        assignment = await service.update_assignment(
            assignment_id, body.model_dump(exclude_unset=True)
        )
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    return AssignmentResponse(**assignment)


@router.delete("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def delete_assignment(
    assignment_id: int,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> AssignmentResponse:
    try:
        return AssignmentResponse(**await service.delete_assignment(assignment_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


# ============================================
# Overrides
# ============================================


@router.get("/overrides", response_model=list[OverrideResponse])
async def list_overrides(
    start_date: date | None = None,
    end_date: date | None = None,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> list[OverrideResponse]:
    return [OverrideResponse(**o) for o in await service.list_overrides(start_date, end_date)]


@router.post("/overrides", response_model=OverridesResult)
async def set_overrides(
    body: OverrideCreate,
    end_date: date | None = None,
    identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> OverridesResult:
    """Set the muting for ``at``, or for every day from ``at`` to ``end_date``."""
    try:
        updated = await service.set_overrides(
            body.at,
            end_date,
            mute_all_lessons=body.mute_all_lessons,
            mute_lessons=body.mute_lessons,
        )
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    logger.info(f"{identity.type} '{identity.name}' set overrides from {body.at}")
    return OverridesResult(updated=updated)
