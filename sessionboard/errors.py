"""Exception types raised across the ingestion core."""
from __future__ import annotations


class SessionboardError(Exception):
    """Base class for sessionboard errors."""


class SessionParseError(SessionboardError):
    """A whole session file could not be read or parsed (single bad lines never raise this)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to parse session file {path}: {reason}")
        self.path = path
        self.reason = reason


class SessionNotFoundError(SessionboardError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SnapshotError(SessionboardError):
    """The stats snapshot is missing, unreadable, or fails validation."""
