"""Typed views over single JSONL log lines.

Every line maps to exactly one record variant. Lines that cannot be used
(blank, invalid JSON, non-object, no type tag) become ``SkipRecord`` with a
reason instead of raising, so callers can tally why lines were dropped.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Union


@dataclass(frozen=True)
class ContentBlock:
    type: str
    text: str = ""
    tool_name: str = ""
    tool_use_id: str = ""
    # None when the block carries no `input` object at all.
    tool_input: dict | None = None
    is_error: bool = False


@dataclass(frozen=True)
class _BaseRecord:
    uuid: str = ""
    timestamp: str = ""
    cwd: str = ""
    git_branch: str = ""
    version: str = ""
    raw: dict = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class UserRecord(_BaseRecord):
    blocks: tuple[ContentBlock, ...] = ()
    is_meta: bool = False
    tag: str = "user"

    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if b.type == "text" and b.text)

    def tool_results(self) -> list[ContentBlock]:
        return [b for b in self.blocks if b.type == "tool_result"]


@dataclass(frozen=True)
class AssistantRecord(_BaseRecord):
    blocks: tuple[ContentBlock, ...] = ()
    model: str = ""
    usage: dict | None = None
    request_id: str = ""
    message_id: str = ""
    tag: str = "assistant"

    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if b.type == "text" and b.text)

    def tool_uses(self) -> list[ContentBlock]:
        return [b for b in self.blocks if b.type == "tool_use"]


@dataclass(frozen=True)
class ProgressRecord(_BaseRecord):
    parent_tool_use_id: str = ""
    data: dict = field(default_factory=dict)
    tag: str = "progress"

    @property
    def agent_id(self) -> str:
        value = self.data.get("agentId")
        return value.strip() if isinstance(value, str) else ""

    def nested_assistant(self) -> "AssistantRecord | None":
        """Assistant message relayed by a foreground agent, if the event carries one."""
        message = self.data.get("message")
        if not isinstance(message, dict) or message.get("type") != "assistant":
            return None
        record = _build_record(message)
        return record if isinstance(record, AssistantRecord) else None


@dataclass(frozen=True)
class SystemRecord(_BaseRecord):
    level: str = ""
    subtype: str = ""
    content: str = ""
    tag: str = "system"


@dataclass(frozen=True)
class OtherRecord(_BaseRecord):
    type_tag: str = ""
    tag: str = "other"


@dataclass(frozen=True)
class SkipRecord:
    reason: str
    tag: str = "skip"


LogRecord = Union[UserRecord, AssistantRecord, ProgressRecord, SystemRecord, OtherRecord, SkipRecord]


def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def tool_result_to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for block in content:
            if isinstance(block, str):
                chunks.append(block)
            elif isinstance(block, dict):
                text = block.get("text")
                if isinstance(text, str) and text.strip():
                    chunks.append(text)
                elif isinstance(block.get("content"), str):
                    chunks.append(block["content"])
        return "\n".join(chunks)
    if content is None:
        return ""
    try:
        return json.dumps(content)
    except (TypeError, ValueError):
        return str(content)


def _parse_blocks(content: Any) -> tuple[ContentBlock, ...]:
    if isinstance(content, str):
        return (ContentBlock(type="text", text=content),) if content else ()
    if not isinstance(content, list):
        return ()

    blocks: list[ContentBlock] = []
    for raw in content:
        if isinstance(raw, str):
            blocks.append(ContentBlock(type="text", text=raw))
            continue
        if not isinstance(raw, dict):
            continue
        block_type = _str(raw.get("type")) or "unknown"
        if block_type == "text":
            text = raw.get("text")
            blocks.append(ContentBlock(type="text", text=text if isinstance(text, str) else ""))
        elif block_type == "tool_use":
            tool_input = raw.get("input")
            blocks.append(ContentBlock(
                type="tool_use",
                tool_name=_str(raw.get("name")),
                tool_use_id=_str(raw.get("id")),
                tool_input=tool_input if isinstance(tool_input, dict) else None,
            ))
        elif block_type == "tool_result":
            blocks.append(ContentBlock(
                type="tool_result",
                tool_use_id=_str(raw.get("tool_use_id")),
                text=tool_result_to_text(raw.get("content")),
                is_error=bool(raw.get("is_error")),
            ))
        else:
            blocks.append(ContentBlock(type=block_type))
    return tuple(blocks)


def _build_record(entry: dict) -> LogRecord:
    entry_type = _str(entry.get("type")).lower()
    if not entry_type:
        return SkipRecord(reason="missing_type")

    common = {
        "uuid": _str(entry.get("uuid")),
        "timestamp": _str(entry.get("timestamp")),
        "cwd": _str(entry.get("cwd")),
        "git_branch": _str(entry.get("gitBranch")),
        "version": _str(entry.get("version")),
        "raw": entry,
    }
    message = entry.get("message")
    message = message if isinstance(message, dict) else {}

    if entry_type == "user":
        return UserRecord(
            **common,
            blocks=_parse_blocks(message.get("content")),
            is_meta=bool(entry.get("isMeta")),
        )

    if entry_type == "assistant":
        usage = message.get("usage")
        return AssistantRecord(
            **common,
            blocks=_parse_blocks(message.get("content")),
            model=_str(message.get("model")),
            usage=usage if isinstance(usage, dict) else None,
            request_id=_str(entry.get("requestId")),
            message_id=_str(message.get("id")),
        )

    if entry_type == "progress":
        data = entry.get("data")
        return ProgressRecord(
            **common,
            parent_tool_use_id=_str(entry.get("parentToolUseID")),
            data=data if isinstance(data, dict) else {},
        )

    if entry_type == "system":
        content = entry.get("content")
        if not isinstance(content, str):
            content = tool_result_to_text(content)
        return SystemRecord(
            **common,
            level=_str(entry.get("level")).lower(),
            subtype=_str(entry.get("subtype")),
            content=content,
        )

    return OtherRecord(**common, type_tag=entry_type)


def parse_line(line: str | bytes) -> LogRecord:
    """Classify one raw JSONL line. Never raises."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    stripped = line.strip()
    if not stripped:
        return SkipRecord(reason="blank")
    try:
        entry = json.loads(stripped)
    except ValueError:
        return SkipRecord(reason="invalid_json")
    if not isinstance(entry, dict):
        return SkipRecord(reason="not_object")
    return _build_record(entry)


def iter_records(path: Path) -> Iterator[LogRecord]:
    """Stream records from a JSONL file. OSError on open propagates."""
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            yield parse_line(line)
