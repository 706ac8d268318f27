"""API routers for sessions, stats, and project analytics."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from sessionboard.errors import SessionNotFoundError, SessionParseError
from sessionboard.models import ProjectAnalytics, SessionDetail, SessionSummary, StatsCache
from sessionboard.services.sessions import SessionService


def _get_session_service(request: Request) -> SessionService:
    service = getattr(request.app.state, "session_service", None)
    if not service:
        raise HTTPException(status_code=503, detail="Session service not initialized")
    return service


# ── Sessions router ─────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@sessions_router.get("", response_model=list[SessionSummary])
async def list_sessions(request: Request):
    """All sessions across projects, most recently active first."""
    return await _get_session_service(request).list_sessions()


@sessions_router.get("/active", response_model=list[SessionSummary])
async def list_active_sessions(request: Request):
    return await _get_session_service(request).list_active_sessions()


@sessions_router.get("/{session_id}", response_model=SessionDetail)
async def get_session(
    request: Request,
    session_id: str,
    projectPath: Optional[str] = Query(None, description="Decoded project path or raw project directory name"),
):
    """Return a single session with turns, tool usage, tokens and agents."""
    service = _get_session_service(request)
    try:
        return await service.get_session_detail(session_id, projectPath)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionParseError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


# ── Stats router ────────────────────────────────────────────────────

stats_router = APIRouter(prefix="/api/stats", tags=["stats"])


@stats_router.get("", response_model=Optional[StatsCache])
async def get_stats(request: Request):
    """Usage stats; null when neither a snapshot nor any session is readable."""
    return await _get_session_service(request).get_stats()


# ── Projects router ─────────────────────────────────────────────────

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


@projects_router.get("/analytics", response_model=list[ProjectAnalytics])
async def get_project_analytics(request: Request):
    return await _get_session_service(request).get_project_analytics()
