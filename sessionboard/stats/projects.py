"""Per-project rollups over session summaries."""
from __future__ import annotations

from collections.abc import Iterable

from sessionboard.date_utils import iso_to_epoch
from sessionboard.models import ProjectAnalytics, SessionSummary


def project_analytics(summaries: Iterable[SessionSummary]) -> list[ProjectAnalytics]:
    rollups: dict[str, ProjectAnalytics] = {}
    branches: dict[str, set[str]] = {}

    for s in summaries:
        item = rollups.get(s.projectPath)
        if item is None:
            item = ProjectAnalytics(projectPath=s.projectPath, projectName=s.projectName)
            rollups[s.projectPath] = item
            branches[s.projectPath] = set()
        item.sessionCount += 1
        item.messageCount += s.messageCount
        item.totalDurationMs += s.durationMs
        if s.isActive:
            item.activeSessionCount += 1
        if iso_to_epoch(s.lastActiveAt) > iso_to_epoch(item.lastActiveAt):
            item.lastActiveAt = s.lastActiveAt
        if s.branch:
            branches[s.projectPath].add(s.branch)

    for path, item in rollups.items():
        item.branches = sorted(branches[path])

    return sorted(rollups.values(), key=lambda p: iso_to_epoch(p.lastActiveAt), reverse=True)
