"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from bellhub.api.core.config import Settings, get_settings
from bellhub.api.core.database import DatabaseManager
from bellhub.api.core.logging import setup_logging
from bellhub.api.routers import (
    auth_router,
    bells_router,
    icoms_router,
    queries_router,
    school_router,
    settings_router,
    sounds_router,
)
from bellhub.engine.clock import SystemClock
from bellhub.engine.playback import FfplayPlayback, NullPlayback, PlaybackBackend
from bellhub.engine.runtime import DispatchRuntime
from bellhub.engine.timetable import BellSnapshot
from bellhub.shared.migrations.runner import MigrationRunner
from bellhub.shared.repositories.icom import IcomRepository
from bellhub.shared.repositories.school import TimetableRepository
from bellhub.shared.repositories.settings import ServiceSettingsRepository

logger = logging.getLogger(__name__)

SERVICE_NAME = "bellhub-api"
VERSION = "1.0.0"


class DatabaseBackedSources:
    """Snapshot and icom lookups that follow the pool across reconnects."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self.db_manager = db_manager

    async def load_snapshot(self) -> BellSnapshot:
        return await TimetableRepository(self.db_manager.pool).load_snapshot()

    async def icom_exists(self, icom_id: str) -> bool:
        return await IcomRepository(self.db_manager.pool).exists(icom_id)


def build_playback(settings: Settings) -> PlaybackBackend:
    if settings.playback_backend == "null":
        return NullPlayback()
    return FfplayPlayback(settings.sounds_dir, ffplay_path=settings.ffplay_path)


async def _prepare_database(db_manager: DatabaseManager) -> None:
    await db_manager.connect()
    await MigrationRunner(db_manager.pool).run_pending()


async def _heartbeat(app: FastAPI, interval: int = 300) -> None:
    """Periodic heartbeat: log uptime, DB status and dispatch load"""
    while True:
        await asyncio.sleep(interval)
        uptime = int(time.time() - app.state.start_time)
        db_ok = await app.state.db.ping()
        runtime: DispatchRuntime = app.state.runtime
        logger.info(
            f"Heartbeat: uptime={uptime}s, db={db_ok}, "
            f"active_queries={runtime.queues.active_count()}, sessions={len(runtime.sessions)}"
        )


async def _db_retry_loop(db_manager: DatabaseManager) -> None:
    """Background loop to retry DB connection after startup failure."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        if db_manager.is_connected:
            return
        try:
            await _prepare_database(db_manager)
            logger.info("Database connected (background retry)")
            return
        except Exception as e:
            await db_manager.disconnect()
            delay = min(delay * 2, max_delay)
            logger.warning(
                f"DB background retry failed: {type(e).__name__}: {e}, next retry in {delay}s"
            )


async def _initial_volume(db_manager: DatabaseManager) -> int:
    if not db_manager.is_connected:
        return 65
    try:
        settings = await ServiceSettingsRepository(db_manager.pool).get()
        return settings.volume
    except Exception as e:
        logger.warning(f"Could not load stored volume, using default: {e}")
        return 65


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    settings: Settings = app.state.settings
    app.state.start_time = time.time()

    logger.info("Starting bellhub API server")
    logger.info(f"Environment: {settings.environment}")

    # Wait up to 30s for the database before accepting requests
    db_manager = DatabaseManager(settings.database_url, ssl=settings.database_ssl)
    app.state.db = db_manager
    db_retry_task: asyncio.Task | None = None
    try:
        await asyncio.wait_for(_prepare_database(db_manager), timeout=30)
        logger.info("Database connected")
    except Exception as e:
        logger.error(f"DB startup failed: {type(e).__name__}: {e}, retrying in background")
        await db_manager.disconnect()
        db_retry_task = asyncio.create_task(_db_retry_loop(db_manager))

    sources = DatabaseBackedSources(db_manager)
    runtime = DispatchRuntime(
        playback=build_playback(settings),
        snapshot_source=sources,
        icom_exists=sources.icom_exists,
        clock=SystemClock(settings.timezone),
        volume=await _initial_volume(db_manager),
        history_limit=settings.query_history_limit,
        unknown_duration_fallback=settings.unknown_duration_fallback_seconds,
        tick_seconds=settings.scheduler_tick_seconds,
        catch_up_seconds=settings.scheduler_catch_up_seconds,
        scheduler_priority=settings.scheduler_priority,
        stream_buffer_chunks=settings.stream_buffer_chunks,
    )
    app.state.runtime = runtime
    runtime.start(scheduler=settings.scheduler_enabled)
    logger.info(f"Dispatch runtime started (scheduler={settings.scheduler_enabled})")

    heartbeat_task: asyncio.Task | None = None
    if settings.enable_keep_alive:
        heartbeat_task = asyncio.create_task(_heartbeat(app, settings.keep_alive_interval))
        logger.info(f"Heartbeat started (interval={settings.keep_alive_interval}s)")

    yield

    logger.info("Shutting down bellhub API server")
    for task in (db_retry_task, heartbeat_task):
        if task:
            task.cancel()
    try:
        await runtime.shutdown()
        await db_manager.disconnect()
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed payloads as 400"""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "validation error", "errors": errors})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="bellhub API",
        description="Bell and announcement dispatch for building icoms",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.settings = settings
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(auth_router.router)
    app.include_router(icoms_router.router)
    app.include_router(queries_router.router)
    app.include_router(settings_router.router)
    app.include_router(bells_router.router)
    app.include_router(school_router.router)
    app.include_router(sounds_router.router)

    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": SERVICE_NAME, "status": "running"}

    # Liveness check, no external dependency
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - app.state.start_time),
        }

    @app.get("/status")
    async def status():
        """Readiness endpoint with DB health and dispatch load"""
        db_manager: DatabaseManager | None = getattr(app.state, "db", None)
        runtime: DispatchRuntime | None = getattr(app.state, "runtime", None)
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "uptime_seconds": int(time.time() - app.state.start_time),
            "db_connected": db_manager is not None and await db_manager.ping(),
            "active_queries": runtime.queues.active_count() if runtime else 0,
            "live_sessions": len(runtime.sessions) if runtime else 0,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    logger.info("FastAPI application configured")

    return app
