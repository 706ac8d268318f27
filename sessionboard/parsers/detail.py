"""Full streaming parse of one session log (plus linked sub-agent logs) into a SessionDetail."""
from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from pathlib import Path

from sessionboard.date_utils import duration_ms
from sessionboard.errors import SessionParseError
from sessionboard.models import ContextWindow, SessionDetail, SessionErrorEvent, Turn
from sessionboard.observability import record_ingestion, record_parser_failure, start_span
from sessionboard.parsers.agents import AgentCorrelator
from sessionboard.parsers.records import (
    AssistantRecord,
    LogRecord,
    ProgressRecord,
    SkipRecord,
    SystemRecord,
    UserRecord,
    parse_line,
)
from sessionboard.parsers.usage import TokenAccumulator, usage_from_payload

logger = logging.getLogger("sessionboard.parsers")

_TURN_TEXT_LIMIT = 500


class _DetailBuilder:
    def __init__(self, path: Path, session_id: str, project_path: str, project_name: str):
        self.detail = SessionDetail(sessionId=session_id, projectPath=project_path, projectName=project_name)
        self.tokens = TokenAccumulator()
        self.agents = AgentCorrelator(path)
        self.tool_counter: Counter[str] = Counter()
        self.skipped: Counter[str] = Counter()
        self._seen_tool_use_ids: set[str] = set()

    def feed(self, record: LogRecord) -> None:
        if isinstance(record, SkipRecord):
            self.skipped[record.reason] += 1
            return

        self._track_context(record)

        if isinstance(record, AssistantRecord):
            self._on_assistant(record)
        elif isinstance(record, UserRecord):
            self.detail.turns.append(Turn(
                uuid=record.uuid or None,
                role="user",
                timestamp=record.timestamp,
                text=record.text()[:_TURN_TEXT_LIMIT],
            ))
            self.agents.on_user(record)
        elif isinstance(record, ProgressRecord):
            self.agents.on_progress(record)
        elif isinstance(record, SystemRecord) and record.level == "error":
            self.detail.errors.append(SessionErrorEvent(
                timestamp=record.timestamp,
                subtype=record.subtype,
                content=record.content,
                raw=record.raw,
            ))

    def _track_context(self, record: LogRecord) -> None:
        detail = self.detail
        if record.git_branch and not detail.branch:
            detail.branch = record.git_branch
        if record.cwd and not detail.cwd:
            detail.cwd = record.cwd
        if record.timestamp:
            if not detail.startedAt:
                detail.startedAt = record.timestamp
            detail.lastActiveAt = record.timestamp

    def _on_assistant(self, record: AssistantRecord) -> None:
        tool_names: list[str] = []
        for block in record.tool_uses():
            tool_names.append(block.tool_name)
            if block.tool_use_id and block.tool_use_id in self._seen_tool_use_ids:
                continue
            if block.tool_use_id:
                self._seen_tool_use_ids.add(block.tool_use_id)
            self.tool_counter[block.tool_name or "unknown"] += 1

        self.detail.turns.append(Turn(
            uuid=record.uuid or None,
            role="assistant",
            timestamp=record.timestamp,
            model=record.model or None,
            text=record.text()[:_TURN_TEXT_LIMIT],
            toolCalls=tool_names,
        ))

        if record.usage is not None:
            self.tokens.add(record.model, record.usage, record.request_id)
            usage = usage_from_payload(record.usage)
            self.detail.contextWindow = ContextWindow(
                model=record.model or None,
                usedTokens=usage.inputTokens + usage.cacheReadInputTokens + usage.cacheCreationInputTokens,
                timestamp=record.timestamp,
            )

        self.agents.on_assistant(record)

    def build(self) -> SessionDetail:
        detail = self.detail
        if detail.lastActiveAt and detail.startedAt and detail.lastActiveAt < detail.startedAt:
            detail.lastActiveAt = detail.startedAt
        detail.durationMs = duration_ms(detail.startedAt, detail.lastActiveAt)
        detail.toolFrequency = dict(self.tool_counter)
        detail.tokensByModel = self.tokens.by_model()
        detail.agents = self.agents.finalize()
        detail.skippedLines = dict(self.skipped)
        return detail


def parse_detail_file(path: Path, session_id: str, project_path: str, project_name: str) -> SessionDetail:
    """Parse a whole session log. Malformed lines are skipped; an unreadable file raises SessionParseError."""
    t0 = time.monotonic()
    builder = _DetailBuilder(path, session_id, project_path, project_name)
    with start_span("sessionboard.parse_detail", {"session.id": session_id}):
        try:
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                for line in handle:
                    builder.feed(parse_line(line))
        except OSError as exc:
            record_parser_failure("session_detail")
            record_ingestion("session_detail", "error", (time.monotonic() - t0) * 1000)
            raise SessionParseError(str(path), str(exc)) from exc
        detail = builder.build()

    if builder.skipped:
        logger.debug("Skipped lines in %s: %s", path, dict(builder.skipped))
    record_ingestion("session_detail", "success", (time.monotonic() - t0) * 1000)
    return detail


async def parse_detail(path: Path, session_id: str, project_path: str, project_name: str) -> SessionDetail:
    return await asyncio.to_thread(parse_detail_file, path, session_id, project_path, project_name)
