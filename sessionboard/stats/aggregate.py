"""Folding parsed sessions into the stats snapshot shape."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from sessionboard import config
from sessionboard.date_utils import date_key, local_hour, now_iso
from sessionboard.models import (
    DailyActivity,
    DailyModelTokens,
    LongestSession,
    ModelUsage,
    SessionDetail,
    SessionSummaryWithPath,
    StatsCache,
)
from sessionboard.parsers.detail import parse_detail

logger = logging.getLogger("sessionboard.stats")

DetailParser = Callable[[Path, str, str, str], Awaitable[SessionDetail]]


@dataclass(frozen=True)
class ParseOutcome:
    session: SessionSummaryWithPath
    detail: Optional[SessionDetail] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.detail is not None


async def _parse_one(session: SessionSummaryWithPath, parse: DetailParser) -> ParseOutcome:
    try:
        detail = await parse(Path(session.filePath), session.sessionId, session.projectPath, session.projectName)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Detail parse failed for session %s: %s", session.sessionId, exc)
        return ParseOutcome(session=session, error=str(exc))
    return ParseOutcome(session=session, detail=detail)


async def parse_details_in_batches(
    sessions: list[SessionSummaryWithPath],
    batch_size: int = config.DETAIL_BATCH_SIZE,
    parse: DetailParser = parse_detail,
) -> list[ParseOutcome]:
    """Parse details ``batch_size`` at a time: concurrent within a batch, batches in sequence.

    One session failing never fails the batch; its outcome carries the error instead.
    """
    size = max(1, batch_size)
    outcomes: list[ParseOutcome] = []
    for start in range(0, len(sessions), size):
        batch = sessions[start:start + size]
        outcomes.extend(await asyncio.gather(*(_parse_one(s, parse) for s in batch)))
    return outcomes


def session_date(session: SessionSummaryWithPath) -> str:
    return date_key(session.lastActiveAt or session.startedAt)


class StatsAccumulator:
    """Mutable working copy of a StatsCache that sessions are folded into."""

    def __init__(self, base: Optional[StatsCache] = None):
        base = base.model_copy(deep=True) if base is not None else None
        self.base = base
        self.activity: dict[str, DailyActivity] = {d.date: d for d in base.dailyActivity} if base else {}
        self.model_tokens: dict[str, dict[str, int]] = (
            {d.date: dict(d.tokensByModel) for d in base.dailyModelTokens} if base else {}
        )
        self.model_usage: dict[str, ModelUsage] = dict(base.modelUsage) if base else {}
        self.hour_counts: dict[str, int] = dict(base.hourCounts) if base else {}
        self.longest: LongestSession = base.longestSession if base else LongestSession()
        self.total_sessions = base.totalSessions if base else 0
        self.total_messages = base.totalMessages if base else 0
        self.first_started_at: Optional[str] = None

    def add(self, session: SessionSummaryWithPath, detail: Optional[SessionDetail]) -> None:
        day = session_date(session)
        activity = self.activity.get(day)
        if activity is None:
            activity = DailyActivity(date=day)
            self.activity[day] = activity
        day_tokens = self.model_tokens.setdefault(day, {})

        activity.sessionCount += 1
        self.total_sessions += 1

        if detail is not None:
            message_count = len(detail.turns)
            activity.toolCallCount += sum(detail.toolFrequency.values())
            for model, usage in detail.tokensByModel.items():
                day_tokens[model] = day_tokens.get(model, 0) + usage.total
                totals = self.model_usage.get(model)
                if totals is None:
                    totals = ModelUsage()
                    self.model_usage[model] = totals
                totals.inputTokens += usage.inputTokens
                totals.outputTokens += usage.outputTokens
                totals.cacheReadInputTokens += usage.cacheReadInputTokens
                totals.cacheCreationInputTokens += usage.cacheCreationInputTokens
        else:
            message_count = session.messageCount

        activity.messageCount += message_count
        self.total_messages += message_count

        hour = local_hour(session.startedAt)
        if hour is not None:
            self.hour_counts[hour] = self.hour_counts.get(hour, 0) + 1

        if session.durationMs > self.longest.duration:
            self.longest = LongestSession(
                sessionId=session.sessionId,
                duration=session.durationMs,
                messageCount=message_count,
                timestamp=session.lastActiveAt or session.startedAt,
            )

        if session.startedAt and (self.first_started_at is None or session.startedAt < self.first_started_at):
            self.first_started_at = session.startedAt

    def fold(self, outcomes: list[ParseOutcome]) -> "StatsAccumulator":
        for outcome in outcomes:
            self.add(outcome.session, outcome.detail)
        return self

    def build(self) -> StatsCache:
        fields = dict(
            dailyActivity=[self.activity[d] for d in sorted(self.activity)],
            dailyModelTokens=[
                DailyModelTokens(date=d, tokensByModel=self.model_tokens[d]) for d in sorted(self.model_tokens)
            ],
            modelUsage=self.model_usage,
            hourCounts=self.hour_counts,
            longestSession=self.longest,
            totalSessions=self.total_sessions,
            totalMessages=self.total_messages,
        )
        if self.base is not None:
            return self.base.model_copy(update=fields)

        computed_at = now_iso()
        if not self.longest.timestamp:
            fields["longestSession"] = self.longest.model_copy(update={"timestamp": computed_at})
        return StatsCache(
            version=1,
            lastComputedDate=computed_at,
            firstSessionDate=self.first_started_at or computed_at,
            **fields,
        )


def merge_recent_sessions(snapshot: StatsCache, outcomes: list[ParseOutcome]) -> StatsCache:
    """Fold freshly parsed sessions into a copy of a stale snapshot; the snapshot is left untouched."""
    if not outcomes:
        return snapshot
    return StatsAccumulator(snapshot).fold(outcomes).build()


def compute_from_sessions(outcomes: list[ParseOutcome]) -> StatsCache:
    """Build a snapshot from scratch when no precomputed one is available."""
    return StatsAccumulator().fold(outcomes).build()
