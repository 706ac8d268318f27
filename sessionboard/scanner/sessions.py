"""Session list scanning with an mtime-keyed summary cache."""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from sessionboard.caches import MtimeCache
from sessionboard.claude_paths import extract_session_id
from sessionboard.date_utils import iso_to_epoch
from sessionboard.models import Project, SessionSummary, SessionSummaryWithPath
from sessionboard.observability import record_ingestion, start_span
from sessionboard.parsers.summary import parse_summary
from sessionboard.scanner.active import ActiveSessionDetector
from sessionboard.scanner.projects import scan_projects

logger = logging.getLogger("sessionboard.scanner")


class SessionScanner:
    def __init__(
        self,
        projects_dir: Path,
        active_detector: ActiveSessionDetector,
        summary_cache: Optional[MtimeCache[SessionSummary]] = None,
    ):
        self.projects_dir = projects_dir
        self.active_detector = active_detector
        self.summary_cache: MtimeCache[SessionSummary] = summary_cache if summary_cache is not None else MtimeCache()
        self.parse_count = 0

    async def scan_with_paths(self) -> list[SessionSummaryWithPath]:
        """Internal form: keeps the absolute file path, used by the stats engine."""
        return await asyncio.to_thread(self._scan_blocking)

    async def scan(self) -> list[SessionSummary]:
        """Boundary form: file paths are stripped before leaving this layer."""
        return [summary.without_path() for summary in await self.scan_with_paths()]

    async def active_sessions(self) -> list[SessionSummary]:
        return [summary for summary in await self.scan() if summary.isActive]

    def _scan_blocking(self) -> list[SessionSummaryWithPath]:
        t0 = time.monotonic()
        summaries: list[SessionSummaryWithPath] = []
        with start_span("sessionboard.scan_sessions", {"projects.dir": str(self.projects_dir)}):
            for project in scan_projects(self.projects_dir):
                project_dir = self.projects_dir / project.dirName
                for file_name in project.sessionFiles:
                    summary = self._summarize(project, project_dir, file_name)
                    if summary is not None:
                        summaries.append(summary)

        summaries.sort(key=lambda s: iso_to_epoch(s.lastActiveAt), reverse=True)
        record_ingestion("session_scan", "success", (time.monotonic() - t0) * 1000)
        return summaries

    def _summarize(self, project: Project, project_dir: Path, file_name: str) -> SessionSummaryWithPath | None:
        session_id = extract_session_id(file_name)
        file_path = project_dir / file_name
        try:
            stat = file_path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Skipping session %s: %s", file_path, exc)
            return None

        cached = self.summary_cache.get(session_id, stat.st_mtime)
        if cached is None:
            try:
                cached = parse_summary(
                    file_path, session_id, project.decodedPath, project.projectName, stat.st_size,
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to summarize session %s: %s", file_path, exc)
                return None
            if cached is None:
                return None
            self.parse_count += 1
            self.summary_cache.put(session_id, stat.st_mtime, cached)

        # Activity depends on the time of the query, not on file content.
        is_active = self.active_detector.is_active(project_dir, session_id)
        return SessionSummaryWithPath(
            **cached.model_dump(exclude={"isActive"}),
            isActive=is_active,
            filePath=str(file_path),
        )
