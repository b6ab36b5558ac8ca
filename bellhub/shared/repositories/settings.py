"""Repository for service_settings and accounts tables."""

from __future__ import annotations

import asyncpg

from bellhub.shared.models.icom import Account, ServiceSettings

_ACCOUNT_COLUMNS = "id, name, password, deleted, created_at"


class ServiceSettingsRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get(self) -> ServiceSettings:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT volume, updated_at FROM service_settings WHERE id = 1"
            )
            if not row:
                return ServiceSettings()
            return ServiceSettings(**dict(row))

    async def set_volume(self, volume: int) -> ServiceSettings:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO service_settings (id, volume) VALUES (1, $1)
                ON CONFLICT (id) DO UPDATE SET volume = EXCLUDED.volume, updated_at = NOW()
                RETURNING volume, updated_at
                """,
                volume,
            )
            return ServiceSettings(**dict(row))


class AccountRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def find_active_by_name(self, name: str) -> Account | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE name = $1 AND NOT deleted",
                name,
            )
            if not row:
                return None
            return Account(**dict(row))

    async def get_active(self, account_id: int) -> Account | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = $1 AND NOT deleted",
                account_id,
            )
            if not row:
                return None
            return Account(**dict(row))
