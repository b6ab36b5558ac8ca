"""Icom state API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bellhub.api.core.dependencies import get_current_identity, get_query_service
from bellhub.api.services import Identity, QueryService
from bellhub.engine.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/icoms", tags=["icoms"])


# ============================================
# Response Models
# ============================================


class AuthorInfo(BaseModel):
    type: str
    name: str
    label: str


class QueryInfo(BaseModel):
    id: str
    kind: str
    icom: str
    priority: int
    force: bool
    duration: float | None = None
    status: str
    author: AuthorInfo | None = None
    sound_name: str | None = None
    created_at: datetime
    updated_at: datetime


class IcomInfo(BaseModel):
    id: str
    name: str
    paused: bool
    playing: QueryInfo | None = None
    queue: list[QueryInfo]


# ============================================
# Endpoints
# ============================================


@router.get("", response_model=dict[str, IcomInfo])
async def list_icoms(
    _identity: Identity = Depends(get_current_identity),
    service: QueryService = Depends(get_query_service),
) -> dict[str, IcomInfo]:
    """All icoms with their playing query and waiting line."""
    try:
        icoms = await service.list_icoms()
        return {icom_id: IcomInfo(**info) for icom_id, info in icoms.items()}
    except Exception as e:
        logger.exception(f"Failed to list icoms: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch icoms") from None


@router.get("/{icom_id}", response_model=IcomInfo)
async def get_icom(
    icom_id: str,
    _identity: Identity = Depends(get_current_identity),
    service: QueryService = Depends(get_query_service),
) -> IcomInfo:
    try:
        return IcomInfo(**await service.get_icom(icom_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except Exception as e:
        logger.exception(f"Failed to get icom {icom_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch icom") from None
