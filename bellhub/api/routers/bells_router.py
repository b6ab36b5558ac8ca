"""Global bell settings API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bellhub.api.core.dependencies import get_current_identity, get_school_service
from bellhub.api.services import Identity, SchoolService
from bellhub.engine.errors import InvalidRequestError, NotFoundError
from bellhub.shared.models.school import BellLesson

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bells", tags=["bells"])


# ============================================
# Request / Response Models
# ============================================


class BellLessonModel(BaseModel):
    enabled: bool = True
    start_at: str = ""
    start_sound: str | None = None
    end_at: str = ""
    end_sound: str | None = None


class BellsResponse(BaseModel):
    enabled: bool
    weekdays: dict[str, bool]
    lessons: list[BellLessonModel]
    updated_at: datetime | None = None


class BellsUpdate(BaseModel):
    enabled: bool | None = None
    weekdays: dict[str, bool] | None = None
    lessons: list[BellLessonModel] | None = None


class LessonToggle(BaseModel):
    enabled: bool


# ============================================
# Endpoints
# ============================================


@router.get("", response_model=BellsResponse)
async def get_bells(
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> BellsResponse:
    return BellsResponse(**await service.get_bells())


@router.patch("", response_model=BellsResponse)
async def update_bells(
    body: BellsUpdate,
    identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> BellsResponse:
    """Switch bells on or off, per weekday, and replace the lesson fallbacks."""
    lessons = (
        [BellLesson(**lesson.model_dump()) for lesson in body.lessons]
        if body.lessons is not None
        else None
    )
    try:
        bells = await service.update_bells(
            enabled=body.enabled, weekdays=body.weekdays, lessons=lessons
        )
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    logger.info(f"{identity.type} '{identity.name}' updated bell settings")
    return BellsResponse(**bells)


@router.patch("/lessons/{index}", response_model=BellLessonModel)
async def toggle_lesson(
    index: int,
    body: LessonToggle,
    _identity: Identity = Depends(get_current_identity),
    service: SchoolService = Depends(get_school_service),
) -> BellLessonModel:
    try:
        return BellLessonModel(**await service.set_lesson_enabled(index, body.enabled))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
