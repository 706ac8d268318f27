"""Cheap session-list metadata from the head and tail of a session log."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

from sessionboard import config
from sessionboard.date_utils import duration_ms, iso_to_epoch, parse_timestamp
from sessionboard.models import SessionSummary
from sessionboard.parsers.records import AssistantRecord, LogRecord, SkipRecord, UserRecord, parse_line

logger = logging.getLogger("sessionboard.parsers")

_SYNTHETIC_MODEL = "<synthetic>"


def _read_head(handle: BinaryIO, window: int) -> bytes:
    head = handle.read(window)
    cut = head.rfind(b"\n")
    if cut >= 0:
        return head[: cut + 1]
    # first line is longer than the window: read on to its end
    chunks = [head]
    while True:
        chunk = handle.read(window)
        if not chunk:
            break
        cut = chunk.find(b"\n")
        if cut >= 0:
            chunks.append(chunk[: cut + 1])
            break
        chunks.append(chunk)
    return b"".join(chunks)


def _read_tail(handle: BinaryIO, file_size: int, window: int, floor: int) -> bytes:
    """Complete lines at the end of the file, never reaching back before ``floor``."""
    start = max(floor, file_size - window)
    handle.seek(start)
    tail = handle.read(max(0, file_size - start))
    # last line is longer than the window: read back to the newline before it
    while start > floor and b"\n" not in tail.rstrip(b"\r\n"):
        step = min(window, start - floor)
        start -= step
        handle.seek(start)
        tail = handle.read(step) + tail
    if start > floor:
        tail = tail[tail.index(b"\n") + 1 :]
    return tail


def _read_sample_lines(path: Path, file_size: int, window: int) -> tuple[list[bytes], list[bytes]]:
    """Return (head lines, tail lines).

    When the file fits inside both windows it is read once and returned as
    head only, so no line is counted twice. Otherwise each window is widened
    to whole lines, and the tail starts where the head ended at the earliest.
    """
    with path.open("rb") as handle:
        if file_size <= window * 2:
            return handle.read().splitlines(), []

        head = _read_head(handle, window)
        tail = _read_tail(handle, file_size, window, len(head))

    return head.splitlines(), tail.splitlines()


def _parse_lines(lines: list[bytes]) -> list[LogRecord]:
    return [record for record in (parse_line(line) for line in lines) if not isinstance(record, SkipRecord)]


def parse_summary(
    path: Path,
    session_id: str,
    project_path: str,
    project_name: str,
    file_size: int,
    window: int = config.SUMMARY_SAMPLE_BYTES,
) -> SessionSummary | None:
    """Return a summary built from the sampled lines, or None when no timestamped record is found.

    Message counts cover the sampled lines only: exact for files that fit in
    the sample windows, a lower bound for larger ones.
    """
    try:
        head_lines, tail_lines = _read_sample_lines(path, file_size, window)
    except OSError as exc:
        logger.debug("Cannot sample %s: %s", path, exc)
        return None

    head = _parse_lines(head_lines)
    tail = _parse_lines(tail_lines)
    records = head + tail

    timestamps = [r.timestamp for r in records if parse_timestamp(r.timestamp)]
    if not timestamps:
        return None

    branch = next((r.git_branch for r in records if r.git_branch), None)
    cwd = next((r.cwd for r in records if r.cwd), None)
    version = next((r.version for r in records if r.version), None)
    model = next(
        (
            r.model
            for r in records
            if isinstance(r, AssistantRecord) and r.model and r.model != _SYNTHETIC_MODEL
        ),
        None,
    )
    user_count = sum(1 for r in records if isinstance(r, UserRecord))
    assistant_count = sum(1 for r in records if isinstance(r, AssistantRecord))

    started_at = min(timestamps, key=iso_to_epoch)
    last_active_at = max(timestamps, key=iso_to_epoch)

    return SessionSummary(
        sessionId=session_id,
        projectPath=project_path,
        projectName=project_name,
        branch=branch,
        cwd=cwd,
        startedAt=started_at,
        lastActiveAt=last_active_at,
        durationMs=duration_ms(started_at, last_active_at),
        messageCount=user_count + assistant_count,
        userMessageCount=user_count,
        assistantMessageCount=assistant_count,
        model=model,
        version=version,
        fileSizeBytes=file_size,
    )
