import asyncio
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from sessionboard.date_utils import local_hour
from sessionboard.db.connection import open_connection
from sessionboard.db.repositories import SqliteDiskCache
from sessionboard.db.sqlite_migrations import run_migrations
from sessionboard.models import SessionDetail, SessionSummaryWithPath
from sessionboard.parsers.detail import parse_detail
from sessionboard.scanner.active import ActiveSessionDetector
from sessionboard.scanner.sessions import SessionScanner
from sessionboard.stats import engine as engine_module
from sessionboard.stats.aggregate import compute_from_sessions, parse_details_in_batches
from sessionboard.stats.engine import StatsEngine
from sessionboard.tests.factories import assistant, tool_use, ts, usage, user, write_jsonl

TODAY = "2026-03-10"


def _snapshot_payload(**overrides) -> dict:
    payload = {
        "version": 2,
        "lastComputedDate": "2026-03-08",
        "dailyActivity": [{"date": "2026-03-01", "messageCount": 10, "sessionCount": 2, "toolCallCount": 4}],
        "dailyModelTokens": [{"date": "2026-03-01", "tokensByModel": {"m": 500}}],
        "modelUsage": {
            "m": {
                "inputTokens": 400,
                "outputTokens": 100,
                "cacheReadInputTokens": 0,
                "cacheCreationInputTokens": 0,
                "webSearchRequests": 0,
            }
        },
        "totalSessions": 2,
        "totalMessages": 10,
        "longestSession": {"sessionId": "old", "duration": 1000, "messageCount": 4, "timestamp": "2026-03-01T10:00:00Z"},
        "firstSessionDate": "2026-03-01T09:00:00Z",
        "hourCounts": {"10": 2},
        "totalSpeculationTimeSavedMs": 0,
    }
    payload.update(overrides)
    return payload


class StatsEngineTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.projects_dir = self.root / "projects"
        self.stats_path = self.root / "stats-cache.json"
        self.now = [1000.0]
        self.parsed: list[str] = []

    async def _counting_parse(self, path, session_id, project_path, project_name):
        self.parsed.append(session_id)
        return await parse_detail(path, session_id, project_path, project_name)

    def _engine(self, **kwargs) -> StatsEngine:
        scanner = SessionScanner(self.projects_dir, ActiveSessionDetector(self.root))
        kwargs.setdefault("parse", self._counting_parse)
        return StatsEngine(
            scanner,
            self.stats_path,
            today=lambda: TODAY,
            clock=lambda: self.now[0],
            **kwargs,
        )

    def _write_snapshot(self, payload: dict | None = None) -> None:
        self.stats_path.write_text(json.dumps(payload or _snapshot_payload()), encoding="utf-8")

    def _write_yesterday_session(self) -> None:
        write_jsonl(self.projects_dir / "-Users-me-app" / "yesterday.jsonl", [
            user("go", ts(0, day="2026-03-09")),
            assistant(
                ts(5, day="2026-03-09"),
                model="m",
                tools=[tool_use("t1", "Read", {"file_path": "a"})],
                usage=usage(1000, 200),
                request_id="req-1",
            ),
        ])

    def _write_old_sessions(self) -> None:
        app = self.projects_dir / "-Users-me-app"
        write_jsonl(app / "older.jsonl", [user("x", ts(0, day="2026-03-07")), assistant(ts(1, day="2026-03-07"), model="m")])
        write_jsonl(app / "same-day.jsonl", [user("x", ts(0, day="2026-03-08")), assistant(ts(1, day="2026-03-08"), model="m")])

    async def test_stale_snapshot_is_enriched_with_sessions_after_its_date(self) -> None:
        self._write_snapshot()
        self._write_old_sessions()
        self._write_yesterday_session()

        stats = await self._engine().get_stats()
        assert stats is not None

        self.assertEqual(self.parsed, ["yesterday"])
        day_tokens = {d.date: d.tokensByModel for d in stats.dailyModelTokens}
        self.assertEqual(day_tokens["2026-03-09"], {"m": 1200})
        self.assertEqual(day_tokens["2026-03-01"], {"m": 500})
        self.assertEqual(stats.totalSessions, 3)
        self.assertEqual(stats.totalMessages, 12)

        activity = {d.date: d for d in stats.dailyActivity}
        self.assertEqual(activity["2026-03-09"].sessionCount, 1)
        self.assertEqual(activity["2026-03-09"].messageCount, 2)
        self.assertEqual(activity["2026-03-09"].toolCallCount, 1)
        self.assertNotIn("2026-03-07", activity)
        self.assertEqual([d.date for d in stats.dailyActivity], sorted(activity))

        self.assertEqual(stats.modelUsage["m"].inputTokens, 1400)
        self.assertEqual(stats.modelUsage["m"].outputTokens, 300)
        self.assertEqual(stats.longestSession.sessionId, "yesterday")
        self.assertEqual(stats.longestSession.messageCount, 2)

        hour = local_hour(ts(0, day="2026-03-09"))
        expected_hours = {"10": 2}
        expected_hours[hour] = expected_hours.get(hour, 0) + 1
        self.assertEqual(stats.hourCounts, expected_hours)

        # Untouched upstream fields survive the merge.
        self.assertEqual(stats.lastComputedDate, "2026-03-08")
        self.assertEqual(stats.model_dump()["totalSpeculationTimeSavedMs"], 0)

    async def test_enrichment_leaves_cached_snapshot_untouched(self) -> None:
        self._write_snapshot()
        self._write_yesterday_session()
        engine = self._engine()

        await engine.get_stats()
        cached = engine.memory_cache.get("stats", self.stats_path.stat().st_mtime)
        assert cached is not None
        self.assertEqual(cached.totalSessions, 2)
        self.assertEqual(len(cached.dailyModelTokens), 1)

    async def test_fresh_snapshot_is_returned_as_is(self) -> None:
        self._write_snapshot(_snapshot_payload(lastComputedDate=f"{TODAY}T01:00:00.000Z"))
        self._write_yesterday_session()

        stats = await self._engine().get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 2)
        self.assertEqual(self.parsed, [])

    async def test_memory_tier_avoids_rereading_unchanged_snapshot(self) -> None:
        self._write_snapshot(_snapshot_payload(lastComputedDate=TODAY))
        engine = self._engine()
        with patch.object(engine_module, "read_snapshot", wraps=engine_module.read_snapshot) as reader:
            await engine.get_stats()
            await engine.get_stats()
        self.assertEqual(reader.call_count, 1)

    async def test_merged_result_is_reused_within_staleness_window(self) -> None:
        self._write_snapshot()
        self._write_yesterday_session()
        engine = self._engine()

        first = await engine.get_stats()
        self.now[0] += 30
        second = await engine.get_stats()
        self.assertIs(first, second)
        self.assertEqual(self.parsed, ["yesterday"])

        self.now[0] += 31
        await engine.get_stats()
        self.assertEqual(self.parsed, ["yesterday", "yesterday"])

    async def test_failed_detail_falls_back_to_summary_message_count(self) -> None:
        self._write_snapshot()
        self._write_yesterday_session()

        async def failing_parse(*args):
            raise RuntimeError("unreadable")

        stats = await self._engine(parse=failing_parse).get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 3)
        self.assertEqual(stats.totalMessages, 12)
        day_tokens = {d.date: d.tokensByModel for d in stats.dailyModelTokens}
        self.assertEqual(day_tokens["2026-03-09"], {})
        activity = {d.date: d for d in stats.dailyActivity}
        self.assertEqual(activity["2026-03-09"].toolCallCount, 0)
        self.assertEqual(stats.modelUsage["m"].inputTokens, 400)

    async def test_enrichment_failure_returns_unenriched_snapshot(self) -> None:
        self._write_snapshot()
        self._write_yesterday_session()
        engine = self._engine()

        with patch.object(engine.scanner, "scan_with_paths", AsyncMock(side_effect=RuntimeError("scan failed"))):
            stats = await engine.get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 2)

        # The failure is not cached; the next call enriches.
        stats = await engine.get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 3)

    async def test_missing_snapshot_triggers_full_computation(self) -> None:
        self._write_old_sessions()
        self._write_yesterday_session()
        engine = self._engine()

        stats = await engine.get_stats()
        assert stats is not None
        self.assertEqual(stats.version, 1)
        self.assertEqual(stats.totalSessions, 3)
        self.assertEqual(stats.totalMessages, 6)
        self.assertEqual(stats.firstSessionDate, ts(0, day="2026-03-07"))
        self.assertEqual({d.date for d in stats.dailyActivity}, {"2026-03-07", "2026-03-08", "2026-03-09"})
        self.assertEqual(sorted(self.parsed), ["older", "same-day", "yesterday"])

        again = await engine.get_stats()
        self.assertIs(again, stats)
        self.assertEqual(len(self.parsed), 3)

    async def test_invalid_snapshot_demotes_to_full_computation(self) -> None:
        self.stats_path.write_text("{not valid json", encoding="utf-8")
        self._write_yesterday_session()
        stats = await self._engine().get_stats()
        assert stats is not None
        self.assertEqual(stats.version, 1)
        self.assertEqual(stats.totalSessions, 1)

        self._write_snapshot({"version": 1})
        stats = await self._engine().get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 1)

    async def test_full_computation_failure_returns_none(self) -> None:
        engine = self._engine()
        with patch.object(engine.scanner, "scan_with_paths", AsyncMock(side_effect=RuntimeError("boom"))):
            self.assertIsNone(await engine.get_stats())

    async def test_no_sessions_and_no_snapshot_yields_empty_aggregate(self) -> None:
        stats = await self._engine().get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 0)
        self.assertEqual(stats.dailyActivity, [])
        self.assertTrue(stats.longestSession.timestamp)

    async def test_fresh_computation_reconciles_with_snapshot_plus_delta(self) -> None:
        self._write_old_sessions()
        self._write_yesterday_session()
        scanner = SessionScanner(self.projects_dir, ActiveSessionDetector(self.root))
        everything = await parse_details_in_batches(await scanner.scan_with_paths())
        before = [o for o in everything if o.session.lastActiveAt < "2026-03-09"]

        snapshot = compute_from_sessions(before).model_copy(update={"lastComputedDate": "2026-03-08T23:00:00.000Z"})
        self._write_snapshot(json.loads(snapshot.model_dump_json()))
        enriched = await self._engine().get_stats()
        fresh = compute_from_sessions(everything)
        assert enriched is not None

        self.assertEqual(enriched.totalSessions, fresh.totalSessions)
        self.assertEqual(enriched.totalMessages, fresh.totalMessages)
        self.assertEqual(enriched.dailyActivity, fresh.dailyActivity)
        self.assertEqual(enriched.dailyModelTokens, fresh.dailyModelTokens)
        self.assertEqual(enriched.modelUsage, fresh.modelUsage)
        self.assertEqual(enriched.hourCounts, fresh.hourCounts)

    async def test_snapshot_source_is_never_written(self) -> None:
        self._write_snapshot()
        self._write_yesterday_session()
        before = (self.stats_path.read_bytes(), self.stats_path.stat().st_mtime)
        await self._engine().get_stats()
        self.assertEqual((self.stats_path.read_bytes(), self.stats_path.stat().st_mtime), before)


class StatsEngineDiskTierTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name) / "claude"
        self.root.mkdir()
        self.stats_path = self.root / "stats-cache.json"
        self.db = await open_connection(Path(tmpdir.name) / "cache" / "cache.db")
        await run_migrations(self.db)
        self.disk_cache = SqliteDiskCache(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    def _engine(self) -> StatsEngine:
        scanner = SessionScanner(self.root / "projects", ActiveSessionDetector(self.root))
        return StatsEngine(scanner, self.stats_path, disk_cache=self.disk_cache, today=lambda: TODAY)

    async def test_disk_tier_survives_a_new_engine(self) -> None:
        self.stats_path.write_text(json.dumps(_snapshot_payload(lastComputedDate=TODAY)), encoding="utf-8")
        mtime_ns = self.stats_path.stat().st_mtime_ns
        first = await self._engine().get_stats()
        assert first is not None

        # Same mtime, unreadable content: only the disk tier can answer.
        self.stats_path.write_text("garbage", encoding="utf-8")
        os.utime(self.stats_path, ns=(mtime_ns, mtime_ns))
        second = await self._engine().get_stats()
        assert second is not None
        self.assertEqual(second.totalSessions, first.totalSessions)
        self.assertEqual(second.model_dump(), first.model_dump())

    async def test_disk_errors_are_treated_as_misses(self) -> None:
        self.stats_path.write_text(json.dumps(_snapshot_payload(lastComputedDate=TODAY)), encoding="utf-8")
        engine = self._engine()
        await self.db.execute("DROP TABLE disk_cache")
        await self.db.commit()
        stats = await engine.get_stats()
        assert stats is not None
        self.assertEqual(stats.totalSessions, 2)


class AggregateTests(unittest.IsolatedAsyncioTestCase):
    async def test_batches_run_in_sequence_and_isolate_failures(self) -> None:
        sessions = [
            SessionSummaryWithPath(
                sessionId=f"s{i}", projectPath="/p", projectName="p",
                startedAt=ts(0), lastActiveAt=ts(1), messageCount=2, filePath=f"/p/s{i}.jsonl",
            )
            for i in range(23)
        ]
        in_flight = [0]
        peak = [0]

        async def parse(path, session_id, project_path, project_name):
            in_flight[0] += 1
            peak[0] = max(peak[0], in_flight[0])
            try:
                await asyncio.sleep(0)
                if session_id == "s5":
                    raise ValueError("bad file")
                return SessionDetail(sessionId=session_id, projectPath=project_path, projectName=project_name)
            finally:
                in_flight[0] -= 1

        outcomes = await parse_details_in_batches(sessions, batch_size=10, parse=parse)
        self.assertEqual([o.session.sessionId for o in outcomes], [s.sessionId for s in sessions])
        self.assertEqual(peak[0], 10)
        failed = [o for o in outcomes if not o.ok]
        self.assertEqual([o.session.sessionId for o in failed], ["s5"])
        self.assertIn("bad file", failed[0].error or "")


if __name__ == "__main__":
    unittest.main()
