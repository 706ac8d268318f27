"""Correlate `Task` dispatches in a parent session with their sub-agents."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from sessionboard.claude_paths import subagent_log_path
from sessionboard.models import Agent, SkillInvocation, TokenUsage
from sessionboard.parsers.records import (
    AssistantRecord,
    ContentBlock,
    ProgressRecord,
    UserRecord,
    iter_records,
)
from sessionboard.parsers.skills import detect_skills
from sessionboard.parsers.usage import TokenAccumulator

logger = logging.getLogger("sessionboard.parsers")

TASK_TOOL_NAME = "Task"
_ASYNC_TASK_AGENT_ID_PATTERN = re.compile(r"\bagentid\s*:\s*([A-Za-z0-9_-]+)\b", re.IGNORECASE)


def extract_background_agent_id(result_text: str) -> str:
    """Best-effort scrape of `agentId: <id>` from a background Task's result text.

    Background agents emit no progress events, so this wording is the only
    signal that links the dispatch to its sub-agent log. It is brittle to
    upstream wording changes and is only consulted when no progress event
    supplied an id.
    """
    match = _ASYNC_TASK_AGENT_ID_PATTERN.search(result_text or "")
    return match.group(1).strip() if match else ""


@dataclass
class _PendingAgent:
    tool_use_id: str
    subagent_type: str
    description: str
    timestamp: str
    is_background: bool
    progress_agent_id: str = ""
    result_text: str | None = None
    progress_tokens: TokenAccumulator = field(default_factory=TokenAccumulator)


@dataclass
class _LinkedLog:
    skills: list[SkillInvocation]
    tokens: TokenUsage


class AgentCorrelator:
    """tool-call id -> partially built agent, filled while the parent stream is read."""

    def __init__(self, session_file: Path):
        self.session_file = session_file
        self._pending: dict[str, _PendingAgent] = {}
        self._order: list[str] = []

    def __len__(self) -> int:
        return len(self._order)

    def on_assistant(self, record: AssistantRecord) -> None:
        for block in record.tool_uses():
            if block.tool_name == TASK_TOOL_NAME:
                self._open(block, record.timestamp)

    def _open(self, block: ContentBlock, timestamp: str) -> None:
        tool_use_id = block.tool_use_id or f"task-{len(self._order)}"
        if tool_use_id in self._pending:
            return
        payload = block.tool_input or {}
        subagent_type = payload.get("subagent_type")
        description = payload.get("description")
        self._pending[tool_use_id] = _PendingAgent(
            tool_use_id=tool_use_id,
            subagent_type=subagent_type.strip() if isinstance(subagent_type, str) else "",
            description=description.strip() if isinstance(description, str) else "",
            timestamp=timestamp,
            is_background=payload.get("run_in_background") is True,
        )
        self._order.append(tool_use_id)

    def on_progress(self, record: ProgressRecord) -> None:
        pending = self._pending.get(record.parent_tool_use_id)
        if pending is None:
            return
        if record.agent_id and not pending.progress_agent_id:
            pending.progress_agent_id = record.agent_id
        nested = record.nested_assistant()
        if nested is not None and nested.usage is not None:
            pending.progress_tokens.add(nested.model, nested.usage, nested.request_id)

    def on_user(self, record: UserRecord) -> None:
        for block in record.tool_results():
            pending = self._pending.get(block.tool_use_id) if block.tool_use_id else self._latest_awaiting_result()
            if pending is not None and pending.result_text is None:
                pending.result_text = block.text

    def _latest_awaiting_result(self) -> _PendingAgent | None:
        for tool_use_id in reversed(self._order):
            pending = self._pending[tool_use_id]
            if pending.result_text is None:
                return pending
        return None

    def finalize(self) -> list[Agent]:
        agents: list[Agent] = []
        for tool_use_id in self._order:
            pending = self._pending[tool_use_id]
            agent_id = pending.progress_agent_id or extract_background_agent_id(pending.result_text or "")
            linked = self._read_linked_log(agent_id) if agent_id else None

            tokens: TokenUsage | None = None
            if pending.progress_tokens.has_usage:
                tokens = pending.progress_tokens.total()
            elif linked is not None:
                tokens = linked.tokens

            agents.append(Agent(
                toolUseId=tool_use_id,
                agentId=agent_id or None,
                subagentType=pending.subagent_type,
                description=pending.description,
                timestamp=pending.timestamp,
                isBackground=pending.is_background,
                skills=linked.skills if linked is not None else None,
                tokens=tokens,
            ))
        return agents

    def _read_linked_log(self, agent_id: str) -> _LinkedLog | None:
        path = subagent_log_path(self.session_file, agent_id)
        if not path.is_file():
            logger.debug("No sub-agent log for agent %s at %s", agent_id, path)
            return None
        try:
            records = list(iter_records(path))
        except OSError as exc:
            logger.warning("Failed to read sub-agent log %s: %s", path, exc)
            return None

        accumulator = TokenAccumulator()
        for record in records:
            if isinstance(record, AssistantRecord) and record.usage is not None:
                accumulator.add(record.model, record.usage, record.request_id)
        return _LinkedLog(skills=detect_skills(records), tokens=accumulator.total())
