"""Database connection factory.

Provides a singleton async SQLite connection (WAL mode) for the disk
cache tier. The database lives outside the Claude root; the source log
tree is never written.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from sessionboard import config

logger = logging.getLogger("sessionboard.db")

_connection: Optional[aiosqlite.Connection] = None


def is_inside_claude_root(db_path: Path, claude_root: Path) -> bool:
    try:
        db_path.resolve().relative_to(claude_root.resolve())
    except ValueError:
        return False
    return True


async def open_connection(db_path: Path) -> aiosqlite.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(db_path))
    conn.row_factory = aiosqlite.Row
    # Enable WAL mode for better concurrent read performance
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def get_connection(db_path: Path | None = None) -> aiosqlite.Connection:
    """Return the singleton database connection, creating it if needed."""
    global _connection
    if _connection is not None:
        return _connection

    path = db_path or config.DB_PATH
    _connection = await open_connection(path)
    logger.info(f"Database connection established: {path}")
    return _connection


async def close_connection() -> None:
    """Close the database connection."""
    global _connection
    if _connection is not None:
        await _connection.close()
        _connection = None
        logger.info("Database connection closed")
