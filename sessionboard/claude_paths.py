"""Locate projects, sessions, sub-agent logs and the stats snapshot under a Claude root."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sessionboard import config

SESSION_SUFFIX = ".jsonl"


@dataclass(frozen=True)
class ClaudePaths:
    root: Path

    @property
    def projects_dir(self) -> Path:
        return self.root / "projects"

    @property
    def stats_path(self) -> Path:
        return self.root / "stats-cache.json"

    @classmethod
    def from_config(cls) -> "ClaudePaths":
        return cls(root=config.CLAUDE_DIR)


def decode_project_dir_name(dir_name: str) -> str:
    """Decode `-Users-me-app` into `/Users/me/app`.

    Every hyphen is read as a path separator, so a real hyphen inside a
    segment (`my-app`) decodes as two segments. Names that are not
    hyphen-encoded are returned unchanged.
    """
    if not dir_name or not dir_name.startswith("-"):
        return dir_name
    return "/" + dir_name[1:].replace("-", "/")


def extract_project_name(project_path: str) -> str:
    name = Path(project_path.rstrip("/")).name if project_path else ""
    return name or project_path


def extract_session_id(file_name: str) -> str:
    if file_name.endswith(SESSION_SUFFIX):
        return file_name[: -len(SESSION_SUFFIX)]
    return file_name


def subagent_log_path(session_file: Path, agent_id: str) -> Path:
    """`<dir>/<session>.jsonl` -> `<dir>/<session>/subagents/agent-<id>.jsonl`."""
    session_dir = session_file.with_suffix("")
    return session_dir / "subagents" / f"agent-{agent_id}{SESSION_SUFFIX}"


def session_lock_path(claude_root: Path, session_id: str) -> Path:
    return claude_root / "tasks" / session_id / ".lock"
