"""Repository for icoms and sounds tables."""

from __future__ import annotations

import logging

import asyncpg

from bellhub.shared.cache import AsyncTTLCache, cached
from bellhub.shared.models.icom import Icom, Sound

logger = logging.getLogger(__name__)

_ICOM_COLUMNS = "id, name, paused, created_at"
_SOUND_COLUMNS = "name, size, mime, duration, created_at"

# Icoms and the sound catalogue change rarely and are read on every bell tick
_icom_cache = AsyncTTLCache("icoms", maxsize=4, ttl=30)
_sound_cache = AsyncTTLCache("sounds", maxsize=4, ttl=30)


class IcomRepository:
    """Read access to configured icoms."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @cached(_icom_cache, "icoms:all")
    async def list_all(self) -> list[Icom]:
        """All icoms in display order."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {_ICOM_COLUMNS} FROM icoms ORDER BY position, id")
            return [Icom(**dict(row)) for row in rows]

    async def get(self, icom_id: str) -> Icom | None:
        for icom in await self.list_all():
            if icom.id == icom_id:
                return icom
        return None

    async def exists(self, icom_id: str) -> bool:
        return await self.get(icom_id) is not None


class SoundRepository:
    """Read access to the sound catalogue."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @cached(_sound_cache, "sounds:all")
    async def list_all(self) -> list[Sound]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {_SOUND_COLUMNS} FROM sounds ORDER BY name")
            return [Sound(**dict(row)) for row in rows]

    async def get(self, name: str) -> Sound | None:
        for sound in await self.list_all():
            if sound.name == name:
                return sound
        return None
