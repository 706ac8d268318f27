"""Enumerate project directories and their session log files."""
from __future__ import annotations

import logging
from pathlib import Path

from sessionboard.claude_paths import SESSION_SUFFIX, decode_project_dir_name, extract_project_name
from sessionboard.models import Project

logger = logging.getLogger("sessionboard.scanner")


def list_session_files(project_dir: Path) -> list[str]:
    try:
        return sorted(
            entry.name
            for entry in project_dir.iterdir()
            if entry.name.endswith(SESSION_SUFFIX) and entry.is_file()
        )
    except OSError as exc:
        logger.debug("Cannot list %s: %s", project_dir, exc)
        return []


def scan_projects(projects_dir: Path) -> list[Project]:
    """One Project per subdirectory of ``projects_dir``; a missing directory yields []."""
    try:
        dir_entries = sorted(p for p in projects_dir.iterdir() if p.is_dir())
    except OSError:
        return []

    projects: list[Project] = []
    for project_dir in dir_entries:
        decoded = decode_project_dir_name(project_dir.name)
        projects.append(Project(
            dirName=project_dir.name,
            decodedPath=decoded,
            projectName=extract_project_name(decoded),
            sessionFiles=list_session_files(project_dir),
        ))
    return projects
