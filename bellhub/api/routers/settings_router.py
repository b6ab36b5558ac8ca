"""Service settings API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from bellhub.api.core.dependencies import get_current_identity, get_settings_service
from bellhub.api.services import Identity, SettingsService
from bellhub.api.services.settings_service import VOLUME_MAX, VOLUME_MIN
from bellhub.engine.errors import InvalidRequestError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


class VolumeResponse(BaseModel):
    ok: bool = True
    volume: int


class VolumeUpdate(BaseModel):
    volume: int = Field(ge=VOLUME_MIN, le=VOLUME_MAX)


@router.get("/volume", response_model=VolumeResponse)
async def get_volume(
    _identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
) -> VolumeResponse:
    try:
        return VolumeResponse(volume=await service.get_volume())
    except Exception as e:
        logger.exception(f"Failed to get volume: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch volume") from None


@router.put("/volume", response_model=VolumeResponse)
async def update_volume(
    body: VolumeUpdate,
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
) -> VolumeResponse:
    """Persist the volume and apply it to active playback."""
    try:
        volume = await service.set_volume(body.volume)
        logger.info(f"{identity.type} '{identity.name}' set volume to {volume}")
        return VolumeResponse(volume=volume)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except Exception as e:
        logger.exception(f"Failed to update volume: {e}")
        raise HTTPException(status_code=500, detail="Failed to update volume") from None
