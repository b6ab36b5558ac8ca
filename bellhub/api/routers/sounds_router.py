"""Sound catalogue API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bellhub.api.core.dependencies import get_current_identity, get_query_service
from bellhub.api.services import Identity, QueryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sounds", tags=["sounds"])


class SoundSpecs(BaseModel):
    duration: float


class SoundInfo(BaseModel):
    name: str
    size: int
    sound_specs: SoundSpecs | None = None


@router.get("/info", response_model=list[SoundInfo])
async def list_sounds(
    _identity: Identity = Depends(get_current_identity),
    service: QueryService = Depends(get_query_service),
) -> list[SoundInfo]:
    """Every known sound, for picking bell and announcement sounds."""
    try:
        return [SoundInfo(**sound) for sound in await service.list_sounds()]
    except Exception as e:
        logger.exception(f"Failed to list sounds: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch sounds") from None
