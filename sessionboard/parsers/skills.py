"""Skill invocation detection over a sub-agent log."""
from __future__ import annotations

import re
from typing import Iterable

from sessionboard import config
from sessionboard.models import SkillInvocation
from sessionboard.parsers.records import AssistantRecord, LogRecord, UserRecord

_COMMAND_NAME_PATTERN = re.compile(r"<command-name>\s*([^<\n]+?)\s*</command-name>", re.IGNORECASE)
SKILL_TOOL_NAME = "Skill"


def injected_skill_names(text: str) -> list[str]:
    """Distinct `<command-name>` markers in ``text``, in order of appearance."""
    names: list[str] = []
    for match in _COMMAND_NAME_PATTERN.finditer(text or ""):
        name = match.group(1).strip()
        if name and name not in names:
            names.append(name)
    return names


def _injected_tool_use_id(skill: str, message_index: int) -> str:
    return f"injected-{skill}-{message_index}"


def detect_skills(
    records: Iterable[LogRecord],
    message_window: int = config.INJECTED_SKILL_MESSAGE_WINDOW,
) -> list[SkillInvocation]:
    injected: list[SkillInvocation] = []
    invoked: list[SkillInvocation] = []
    seen_tool_use_ids: set[str] = set()
    message_index = 0

    for record in records:
        if not isinstance(record, (UserRecord, AssistantRecord)):
            continue
        index = message_index
        message_index += 1

        if isinstance(record, UserRecord):
            if index >= message_window:
                continue
            for name in injected_skill_names(record.text()):
                injected.append(SkillInvocation(
                    skill=name,
                    args=None,
                    source="injected",
                    timestamp=record.timestamp,
                    toolUseId=_injected_tool_use_id(name, index),
                ))
            continue

        for block in record.tool_uses():
            if block.tool_name != SKILL_TOOL_NAME or block.tool_input is None:
                continue
            skill = block.tool_input.get("skill")
            if not isinstance(skill, str) or not skill.strip():
                continue
            # streamed responses repeat the same block on every line
            if block.tool_use_id:
                if block.tool_use_id in seen_tool_use_ids:
                    continue
                seen_tool_use_ids.add(block.tool_use_id)
            args = block.tool_input.get("args")
            invoked.append(SkillInvocation(
                skill=skill.strip(),
                args=args if isinstance(args, str) else None,
                source="invoked",
                timestamp=record.timestamp,
                toolUseId=block.tool_use_id,
            ))

    return injected + invoked
