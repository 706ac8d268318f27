"""Shared timestamp parsing and date-bucket helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (with or without a trailing Z) into an aware datetime."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    try:
        parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def iso_to_epoch(value: Any) -> float:
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed else 0.0


def date_key(value: str) -> str:
    """Date bucket of an ISO string: everything before the 'T'."""
    return (value or "").split("T", 1)[0]


def today_utc() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def now_iso() -> str:
    return format_datetime_utc(datetime.now(timezone.utc))


def duration_ms(started_at: str, ended_at: str) -> int:
    start = parse_timestamp(started_at)
    end = parse_timestamp(ended_at)
    if not start or not end:
        return 0
    return max(0, int((end - start).total_seconds() * 1000))


def local_hour(value: str) -> str | None:
    """Hour-of-day bucket (local time) used by the snapshot's hourCounts."""
    parsed = parse_timestamp(value)
    if not parsed:
        return None
    return str(parsed.astimezone().hour)
