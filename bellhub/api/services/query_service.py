"""API-facing operations on the dispatch runtime."""

from __future__ import annotations

import logging
import uuid

from bellhub.engine.errors import InvalidRequestError, NotFoundError
from bellhub.engine.models import KIND_SOUND, PRIORITY_MAX, PRIORITY_MIN, Query, QueryAuthor
from bellhub.engine.runtime import DispatchRuntime
from bellhub.shared.models.icom import Icom
from bellhub.shared.repositories.icom import IcomRepository, SoundRepository

logger = logging.getLogger(__name__)


class QueryService:
    """Submits sound queries and renders icom and query state."""

    def __init__(
        self,
        runtime: DispatchRuntime,
        icoms: IcomRepository,
        sounds: SoundRepository,
    ) -> None:
        self.runtime = runtime
        self.icoms = icoms
        self.sounds = sounds

    async def create_sound_query(
        self,
        author: QueryAuthor,
        icom_id: str,
        sound_name: str,
        priority: int = 0,
        force: bool = False,
    ) -> Query:
        if not PRIORITY_MIN <= priority <= PRIORITY_MAX:
            raise InvalidRequestError(f"priority must be within {PRIORITY_MIN}..{PRIORITY_MAX}")
        if not icom_id or not sound_name:
            raise InvalidRequestError("icom_id and sound_name are required")

        if not await self.icoms.exists(icom_id):
            raise NotFoundError("icom not found")
        sound = await self.sounds.get(sound_name)
        if sound is None:
            raise NotFoundError("sound not found")

        now = self.runtime.clock.now()
        query = Query(
            id=uuid.uuid4().hex,
            kind=KIND_SOUND,
            icom=icom_id,
            priority=priority,
            force=force,
            created_at=now,
            updated_at=now,
            author=author,
            duration=sound.duration,
            sound_name=sound.name,
        )
        logger.info(f"{author.type}:{author.name} queued '{sound.name}' on '{icom_id}'")
        return self.runtime.queues.enqueue(query)

    def get_query(self, query_id: str) -> Query:
        query = self.runtime.store.get(query_id)
        if query is None:
            raise NotFoundError("query not found")
        return query

    def cancel_query(self, query_id: str) -> Query:
        return self.runtime.queues.cancel(query_id)

    def _icom_info(self, icom: Icom) -> dict:
        playing, waiting = self.runtime.queues.icom_state(icom.id)
        return {
            "id": icom.id,
            "name": icom.name,
            "paused": icom.paused,
            "playing": playing.to_info() if playing else None,
            "queue": [query.to_info() for query in waiting],
        }

    async def list_icoms(self) -> dict[str, dict]:
        return {icom.id: self._icom_info(icom) for icom in await self.icoms.list_all()}

    async def get_icom(self, icom_id: str) -> dict:
        icom = await self.icoms.get(icom_id)
        if icom is None:
            raise NotFoundError("icom not found")
        return self._icom_info(icom)

    async def list_sounds(self) -> list[dict]:
        """Sound catalogue with the measured duration, when known."""
        return [
            {
                "name": sound.name,
                "size": sound.size,
                "sound_specs": {"duration": sound.duration} if sound.duration is not None else None,
            }
            for sound in await self.sounds.list_all()
        ]
