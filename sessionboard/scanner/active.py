"""Decide whether a session is still being written to."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

from sessionboard import config
from sessionboard.claude_paths import SESSION_SUFFIX, session_lock_path


class ActiveSessionDetector:
    """Active = log modified within the recency window, or a lock marker exists."""

    def __init__(
        self,
        claude_root: Path,
        window_seconds: float = config.ACTIVE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.claude_root = claude_root
        self.window_seconds = window_seconds
        self._clock = clock

    def is_active(self, project_dir: Path, session_id: str) -> bool:
        if session_lock_path(self.claude_root, session_id).exists():
            return True
        try:
            mtime = (project_dir / f"{session_id}{SESSION_SUFFIX}").stat().st_mtime
        except OSError:
            return False
        return self._clock() - mtime <= self.window_seconds
