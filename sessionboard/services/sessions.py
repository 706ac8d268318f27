"""Session service: the single entry point the HTTP layer talks to."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from sessionboard import config
from sessionboard.claude_paths import SESSION_SUFFIX, ClaudePaths, decode_project_dir_name, extract_project_name
from sessionboard.db.repositories.disk_cache import SqliteDiskCache
from sessionboard.errors import SessionNotFoundError
from sessionboard.models import ProjectAnalytics, SessionDetail, SessionSummary, StatsCache
from sessionboard.parsers.detail import parse_detail
from sessionboard.scanner.active import ActiveSessionDetector
from sessionboard.scanner.sessions import SessionScanner
from sessionboard.stats.engine import StatsEngine
from sessionboard.stats.projects import project_analytics

logger = logging.getLogger("sessionboard.services")


def _project_dirs(projects_dir: Path) -> list[Path]:
    try:
        return sorted(p for p in projects_dir.iterdir() if p.is_dir())
    except OSError:
        return []


def find_session_file(projects_dir: Path, session_id: str, project_path: Optional[str] = None) -> Optional[Path]:
    """Locate `<session_id>.jsonl`.

    Directories matching ``project_path`` (decoded path or raw directory
    name) are tried first; every project directory is searched after that.
    """
    file_name = f"{session_id}{SESSION_SUFFIX}"
    dirs = _project_dirs(projects_dir)

    if project_path:
        for project_dir in dirs:
            if project_path in (project_dir.name, decode_project_dir_name(project_dir.name)):
                candidate = project_dir / file_name
                if candidate.is_file():
                    return candidate

    for project_dir in dirs:
        candidate = project_dir / file_name
        if candidate.is_file():
            return candidate
    return None


class SessionService:
    def __init__(
        self,
        paths: ClaudePaths,
        disk_cache: Optional[SqliteDiskCache] = None,
        active_window_seconds: float = config.ACTIVE_WINDOW_SECONDS,
    ):
        self.paths = paths
        self.scanner = SessionScanner(
            paths.projects_dir,
            ActiveSessionDetector(paths.root, window_seconds=active_window_seconds),
        )
        self.stats = StatsEngine(self.scanner, paths.stats_path, disk_cache=disk_cache)

    async def list_sessions(self) -> list[SessionSummary]:
        return await self.scanner.scan()

    async def list_active_sessions(self) -> list[SessionSummary]:
        return await self.scanner.active_sessions()

    async def get_session_detail(self, session_id: str, project_path: Optional[str] = None) -> SessionDetail:
        path = await asyncio.to_thread(find_session_file, self.paths.projects_dir, session_id, project_path)
        if path is None:
            raise SessionNotFoundError(session_id)
        decoded = decode_project_dir_name(path.parent.name)
        return await parse_detail(path, session_id, decoded, extract_project_name(decoded))

    async def get_stats(self) -> Optional[StatsCache]:
        return await self.stats.get_stats()

    async def get_project_analytics(self) -> list[ProjectAnalytics]:
        return project_analytics(await self.scanner.scan())
