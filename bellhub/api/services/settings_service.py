"""Service settings. Volume is persisted and pushed to the live runtime."""

from __future__ import annotations

import logging

from bellhub.engine.errors import InvalidRequestError
from bellhub.engine.runtime import DispatchRuntime
from bellhub.shared.repositories.settings import ServiceSettingsRepository

logger = logging.getLogger(__name__)

VOLUME_MIN = 0
VOLUME_MAX = 100


class SettingsService:
    def __init__(self, runtime: DispatchRuntime, repo: ServiceSettingsRepository) -> None:
        self.runtime = runtime
        self.repo = repo

    async def get_volume(self) -> int:
        settings = await self.repo.get()
        return settings.volume

    async def set_volume(self, volume: int) -> int:
        if not VOLUME_MIN <= volume <= VOLUME_MAX:
            raise InvalidRequestError(f"volume must be within {VOLUME_MIN}..{VOLUME_MAX}")
        settings = await self.repo.set_volume(volume)
        self.runtime.lifecycle.set_volume(settings.volume)
        logger.info(f"Volume set to {settings.volume}")
        return settings.volume
