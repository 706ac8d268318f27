"""Three-tier stats snapshot loading with reconciliation against recent sessions.

Tier 1 is an in-process cache keyed by the snapshot's mtime, tier 2 the
SQLite disk cache (survives restarts), tier 3 the snapshot file itself.
A snapshot computed before today is stale: sessions active after its
computation date are parsed and folded into a copy, and that merged
result is reused for a short window. The snapshot file is only read.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional

import aiosqlite
from pydantic import ValidationError

from sessionboard import config
from sessionboard.caches import MtimeCache, TimedCache
from sessionboard.date_utils import date_key, today_utc
from sessionboard.db.repositories.disk_cache import SqliteDiskCache
from sessionboard.errors import SnapshotError
from sessionboard.models import StatsCache
from sessionboard.observability import record_cache_lookup, record_ingestion, start_span
from sessionboard.parsers.detail import parse_detail
from sessionboard.scanner.sessions import SessionScanner
from sessionboard.stats.aggregate import (
    DetailParser,
    compute_from_sessions,
    merge_recent_sessions,
    parse_details_in_batches,
    session_date,
)

logger = logging.getLogger("sessionboard.stats")

DISK_CACHE_NAME = "stats"
_MEMORY_KEY = "stats"
# Merged results are keyed by snapshot mtime; a full computation has no snapshot.
_NO_SNAPSHOT_KEY = None


def read_snapshot(path: Path) -> StatsCache:
    try:
        raw = path.read_text(encoding="utf-8")
        return StatsCache.model_validate(json.loads(raw))
    except (OSError, ValueError, ValidationError) as exc:
        raise SnapshotError(f"Invalid stats snapshot {path}: {exc}") from exc


def is_stale(snapshot: StatsCache, today: str) -> bool:
    return date_key(snapshot.lastComputedDate) < today


class StatsEngine:
    def __init__(
        self,
        scanner: SessionScanner,
        stats_path: Path,
        disk_cache: Optional[SqliteDiskCache] = None,
        memory_cache: Optional[MtimeCache[StatsCache]] = None,
        merged_cache: Optional[TimedCache[StatsCache]] = None,
        merge_staleness_seconds: float = config.MERGE_STALENESS_SECONDS,
        batch_size: int = config.DETAIL_BATCH_SIZE,
        parse: DetailParser = parse_detail,
        today: Callable[[], str] = today_utc,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.scanner = scanner
        self.stats_path = stats_path
        self.disk_cache = disk_cache
        self.batch_size = batch_size
        self._parse = parse
        self._today = today
        self.memory_cache: MtimeCache[StatsCache] = memory_cache if memory_cache is not None else MtimeCache()
        self.merged_cache: TimedCache[StatsCache] = (
            merged_cache if merged_cache is not None else TimedCache(merge_staleness_seconds, clock=clock)
        )

    async def get_stats(self) -> Optional[StatsCache]:
        """Current stats, or None when nothing could be read or computed."""
        try:
            mtime = self.stats_path.stat().st_mtime
        except FileNotFoundError:
            return await self._computed_stats()
        except OSError as exc:
            logger.warning("Cannot stat stats snapshot %s: %s", self.stats_path, exc)
            return await self._computed_stats()

        snapshot = self.memory_cache.get(_MEMORY_KEY, mtime)
        if snapshot is not None:
            record_cache_lookup("memory", "hit")
        else:
            record_cache_lookup("memory", "miss")
            snapshot = await self._load_snapshot(mtime)
            if snapshot is None:
                return await self._computed_stats()
            self.memory_cache.put(_MEMORY_KEY, mtime, snapshot)

        return await self._maybe_enrich(snapshot, mtime)

    async def _load_snapshot(self, mtime: float) -> Optional[StatsCache]:
        snapshot = await self._read_disk(mtime)
        if snapshot is not None:
            return snapshot

        try:
            snapshot = await asyncio.to_thread(read_snapshot, self.stats_path)
        except SnapshotError as exc:
            logger.warning("Falling back to computed stats: %s", exc)
            record_cache_lookup("source", "error")
            return None
        record_cache_lookup("source", "hit")
        await self._write_disk(mtime, snapshot)
        return snapshot

    async def _read_disk(self, mtime: float) -> Optional[StatsCache]:
        if self.disk_cache is None:
            return None
        try:
            snapshot = await self.disk_cache.read(DISK_CACHE_NAME, mtime, StatsCache)
        except (aiosqlite.Error, OSError) as exc:
            logger.warning("Disk cache read failed: %s", exc)
            snapshot = None
        record_cache_lookup("disk", "hit" if snapshot is not None else "miss")
        return snapshot

    async def _write_disk(self, mtime: float, snapshot: StatsCache) -> None:
        if self.disk_cache is None:
            return
        try:
            await self.disk_cache.write(DISK_CACHE_NAME, str(self.stats_path), mtime, snapshot)
        except (aiosqlite.Error, OSError) as exc:
            logger.warning("Disk cache write failed: %s", exc)

    async def _maybe_enrich(self, snapshot: StatsCache, mtime: float) -> StatsCache:
        if not is_stale(snapshot, self._today()):
            return snapshot

        merged = self.merged_cache.get(mtime)
        if merged is not None:
            record_cache_lookup("merged", "hit")
            return merged
        record_cache_lookup("merged", "miss")

        t0 = time.monotonic()
        try:
            with start_span("sessionboard.stats.enrich", {"snapshot.date": snapshot.lastComputedDate}):
                merged = await self._merge_recent(snapshot)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Stats enrichment failed, serving unenriched snapshot: %s", exc)
            record_ingestion("stats_enrich", "error", (time.monotonic() - t0) * 1000)
            return snapshot

        record_ingestion("stats_enrich", "success", (time.monotonic() - t0) * 1000)
        self.merged_cache.put(mtime, merged)
        return merged

    async def _merge_recent(self, snapshot: StatsCache) -> StatsCache:
        cutoff = date_key(snapshot.lastComputedDate)
        recent = [s for s in await self.scanner.scan_with_paths() if session_date(s) > cutoff]
        if not recent:
            return snapshot
        outcomes = await parse_details_in_batches(recent, self.batch_size, self._parse)
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(
            "Merged %d recent sessions into stats snapshot dated %s (%d without detail)",
            len(recent), cutoff, failed,
        )
        return merge_recent_sessions(snapshot, outcomes)

    async def _computed_stats(self) -> Optional[StatsCache]:
        cached = self.merged_cache.get(_NO_SNAPSHOT_KEY)
        if cached is not None:
            record_cache_lookup("computed", "hit")
            return cached
        record_cache_lookup("computed", "miss")

        t0 = time.monotonic()
        try:
            with start_span("sessionboard.stats.compute"):
                sessions = await self.scanner.scan_with_paths()
                outcomes = await parse_details_in_batches(sessions, self.batch_size, self._parse)
                computed = compute_from_sessions(outcomes)
        except Exception as exc:  # noqa: BLE001
            logger.error("Computing stats from sessions failed: %s", exc)
            record_ingestion("stats_compute", "error", (time.monotonic() - t0) * 1000)
            return None

        record_ingestion("stats_compute", "success", (time.monotonic() - t0) * 1000)
        self.merged_cache.put(_NO_SNAPSHOT_KEY, computed)
        return computed
