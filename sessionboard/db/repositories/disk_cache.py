"""SQLite-backed disk tier: validated payloads keyed by the source file's mtime."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional, Type, TypeVar

import aiosqlite
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("sessionboard.db")

M = TypeVar("M", bound=BaseModel)


class SqliteDiskCache:
    """Survives process restarts. A stale mtime or an invalid payload reads as a miss."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def read(self, name: str, source_mtime: float, model: Type[M]) -> Optional[M]:
        async with self.db.execute(
            "SELECT source_mtime, payload_json FROM disk_cache WHERE name = ?", (name,)
        ) as cur:
            row = await cur.fetchone()
        if not row or float(row[0]) != source_mtime:
            return None
        try:
            return model.model_validate(json.loads(row[1]))
        except (ValueError, ValidationError) as exc:
            logger.warning(f"Discarding invalid disk cache entry '{name}': {exc}")
            return None

    async def write(self, name: str, source_path: str, source_mtime: float, payload: BaseModel) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO disk_cache (name, source_path, source_mtime, payload_json, written_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(name) DO UPDATE SET
                 source_path=excluded.source_path, source_mtime=excluded.source_mtime,
                 payload_json=excluded.payload_json, written_at=excluded.written_at""",
            (name, source_path, source_mtime, payload.model_dump_json(), now),
        )
        await self.db.commit()
