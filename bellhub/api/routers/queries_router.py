"""Query submission, inspection and live stream routes."""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from bellhub.api.core.dependencies import (
    get_account_repository,
    get_auth_service,
    get_current_identity,
    get_query_service,
    get_runtime,
)
from bellhub.api.routers.icoms_router import QueryInfo
from bellhub.api.services import AuthService, Identity, QueryService
from bellhub.engine.errors import ConflictError, InvalidRequestError, NotFoundError
from bellhub.engine.models import PRIORITY_MAX, PRIORITY_MIN
from bellhub.engine.runtime import DispatchRuntime
from bellhub.engine.sessions import LiveSession
from bellhub.shared.repositories.settings import AccountRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queries", tags=["queries"])

WS_UNAUTHORIZED = 4001


# ============================================
# Request Models
# ============================================


class SoundQueryCreate(BaseModel):
    icom_id: str = Field(min_length=1)
    sound_name: str = Field(min_length=1)
    priority: int = Field(default=0, ge=PRIORITY_MIN, le=PRIORITY_MAX)
    force: bool = False


# ============================================
# HTTP Endpoints
# ============================================


@router.post("/sound", response_model=QueryInfo)
async def create_sound_query(
    body: SoundQueryCreate,
    identity: Identity = Depends(get_current_identity),
    service: QueryService = Depends(get_query_service),
) -> QueryInfo:
    """Queue a sound on an icom."""
    try:
        query = await service.create_sound_query(
            identity.author,
            body.icom_id,
            body.sound_name,
            priority=body.priority,
            force=body.force,
        )
        return QueryInfo(**query.to_info())
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except Exception as e:
        logger.exception(f"Failed to create sound query: {e}")
        raise HTTPException(status_code=500, detail="Failed to create query") from None


@router.get("/{query_id}", response_model=QueryInfo)
async def get_query(
    query_id: str,
    _identity: Identity = Depends(get_current_identity),
    service: QueryService = Depends(get_query_service),
) -> QueryInfo:
    try:
        return QueryInfo(**service.get_query(query_id).to_info())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.delete("/{query_id}", response_model=QueryInfo)
async def cancel_query(
    query_id: str,
    identity: Identity = Depends(get_current_identity),
    service: QueryService = Depends(get_query_service),
) -> QueryInfo:
    """Cancel a waiting or playing query. Finished queries are returned unchanged."""
    try:
        query = service.cancel_query(query_id)
        logger.info(f"{identity.type} '{identity.name}' cancelled query {query_id}")
        return QueryInfo(**query.to_info())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


# ============================================
# Live Stream
# ============================================


async def _pump_events(websocket: WebSocket, session: LiveSession) -> None:
    """Forward lifecycle events from the session to the socket."""
    while True:
        event = await session.events.get()
        try:
            await websocket.send_json(event)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Live session {session.id}: send failed: {e}")
            return


@router.websocket("/stream")
async def query_stream(
    websocket: WebSocket,
    token: str | None = None,
    runtime: DispatchRuntime = Depends(get_runtime),
    auth_service: AuthService = Depends(get_auth_service),
    accounts: AccountRepository | None = Depends(get_account_repository),
) -> None:
    """Duplex live stream: JSON control frames in, lifecycle events out, audio as binary."""
    await websocket.accept()

    identity = await auth_service.resolve_identity(token, accounts)
    if identity is None:
        await websocket.send_json({"type": "error", "error": "invalid token"})
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    handler = runtime.sessions
    session = handler.open(identity.author)
    writer = asyncio.create_task(_pump_events(websocket, session))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("text") is not None:
                await handler.handle_text(session, message["text"])
            elif message.get("bytes") is not None:
                handler.handle_binary(session, message["bytes"])
    except WebSocketDisconnect:
        pass
    finally:
        handler.close(session)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
