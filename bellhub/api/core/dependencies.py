"""Dependency injection utilities for FastAPI"""

import logging

import asyncpg
from fastapi import Cookie, Depends, Header, HTTPException
from starlette.requests import HTTPConnection

from bellhub.api.core.config import Settings, get_settings
from bellhub.api.core.database import DatabaseManager
from bellhub.api.services import (
    AuthService,
    Identity,
    QueryService,
    SchoolService,
    SettingsService,
)
from bellhub.engine.runtime import DispatchRuntime
from bellhub.shared.repositories.icom import IcomRepository, SoundRepository
from bellhub.shared.repositories.school import SchoolRepository
from bellhub.shared.repositories.settings import AccountRepository, ServiceSettingsRepository

logger = logging.getLogger(__name__)


# ============================================
# Application State
# ============================================


def get_runtime(conn: HTTPConnection) -> DispatchRuntime:
    """Dispatch runtime built in the lifespan (works for HTTP and WebSocket)"""
    runtime = getattr(conn.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Dispatch runtime not ready")
    return runtime


def get_db_pool(conn: HTTPConnection) -> asyncpg.Pool:
    db_manager: DatabaseManager | None = getattr(conn.app.state, "db", None)
    if db_manager is None or not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return db_manager.pool


# ============================================
# Service Dependencies
# ============================================


def get_auth_service(settings: Settings = Depends(get_settings)) -> AuthService:
    """Get AuthService instance (dependency injection)"""
    return AuthService(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expire_days=settings.jwt_expire_days,
        root_password=settings.root_password,
    )


def get_account_repository(conn: HTTPConnection) -> AccountRepository | None:
    """Account lookups; None while the database is unavailable (root login still works)"""
    db_manager: DatabaseManager | None = getattr(conn.app.state, "db", None)
    if db_manager is None or not db_manager.is_connected:
        return None
    return AccountRepository(db_manager.pool)


def get_query_service(
    runtime: DispatchRuntime = Depends(get_runtime),
    pool: asyncpg.Pool = Depends(get_db_pool),
) -> QueryService:
    return QueryService(runtime, IcomRepository(pool), SoundRepository(pool))


def get_settings_service(
    runtime: DispatchRuntime = Depends(get_runtime),
    pool: asyncpg.Pool = Depends(get_db_pool),
) -> SettingsService:
    return SettingsService(runtime, ServiceSettingsRepository(pool))


def get_school_service(
    runtime: DispatchRuntime = Depends(get_runtime),
    pool: asyncpg.Pool = Depends(get_db_pool),
) -> SchoolService:
    return SchoolService(SchoolRepository(pool), runtime.clock)


# ============================================
# Authentication Dependencies
# ============================================


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_identity(
    authorization: str | None = Header(None),
    auth_token: str | None = Cookie(None),
    auth_service: AuthService = Depends(get_auth_service),
    accounts: AccountRepository | None = Depends(get_account_repository),
) -> Identity:
    """Resolve the caller from a bearer header or the auth_token cookie"""
    token = _bearer_token(authorization) or auth_token

    if not token:
        logger.warning("No auth token provided")
        raise HTTPException(status_code=401, detail="Not logged in")

    identity = await auth_service.resolve_identity(token, accounts)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return identity
