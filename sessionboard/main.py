"""Sessionboard FastAPI Backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sessionboard import config
from sessionboard.claude_paths import ClaudePaths
from sessionboard.db import connection, sqlite_migrations
from sessionboard.db.repositories import SqliteDiskCache
from sessionboard.observability import initialize as initialize_observability, shutdown as shutdown_observability
from sessionboard.routers.api import projects_router, sessions_router, stats_router
from sessionboard.services.sessions import SessionService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sessionboard")


async def _open_disk_cache(paths: ClaudePaths) -> SqliteDiskCache | None:
    if connection.is_inside_claude_root(config.DB_PATH, paths.root):
        logger.warning(f"Disk cache disabled: {config.DB_PATH} is inside {paths.root}")
        return None
    try:
        db = await connection.get_connection(config.DB_PATH)
        await sqlite_migrations.run_migrations(db)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Disk cache disabled: {exc}")
        await connection.close_connection()
        return None
    return SqliteDiskCache(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Sessionboard backend starting up")
    initialize_observability(app)

    paths = ClaudePaths.from_config()
    logger.info(f"Reading Claude data from {paths.root}")
    disk_cache = await _open_disk_cache(paths)
    app.state.session_service = SessionService(paths, disk_cache=disk_cache)

    yield

    logger.info("Sessionboard backend shutting down")
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="Sessionboard API",
    description="Read-only API over Claude Code session logs and usage stats",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)
app.include_router(stats_router)
app.include_router(projects_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
        "claudeDir": str(config.CLAUDE_DIR),
    }
