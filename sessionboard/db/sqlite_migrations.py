"""Database schema creation and versioning.

All CREATE TABLE statements for the disk cache tier.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("sessionboard.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── Validated copies of upstream files, keyed by source mtime ──────
CREATE TABLE IF NOT EXISTS disk_cache (
    name          TEXT PRIMARY KEY,
    source_path   TEXT NOT NULL,
    source_mtime  REAL NOT NULL,
    payload_json  TEXT NOT NULL,
    written_at    TEXT NOT NULL
);
"""


async def _get_schema_version(db: aiosqlite.Connection) -> int:
    async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
        row = await cur.fetchone()
    return int(row[0]) if row and row[0] is not None else 0


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create tables if missing and record the schema version."""
    await db.executescript(_TABLES)
    current = await _get_schema_version(db)
    if current < SCHEMA_VERSION:
        await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        logger.info(f"Disk cache schema migrated {current} -> {SCHEMA_VERSION}")
    await db.commit()
