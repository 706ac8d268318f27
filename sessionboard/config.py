"""Sessionboard Backend Configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    value = (os.getenv(name) or "").strip()
    if not value:
        return default
    return Path(value).expanduser()


# Claude root (resolved once per process start)
CLAUDE_DIR = _env_path("SESSIONBOARD_CLAUDE_DIR", Path.home() / ".claude")

# Disk cache tier (must live outside CLAUDE_DIR)
DB_PATH = _env_path("SESSIONBOARD_DB_PATH", Path.home() / ".cache" / "sessionboard" / "cache.db")

# Session activity and parsing
ACTIVE_WINDOW_SECONDS = _env_int("SESSIONBOARD_ACTIVE_WINDOW_SECONDS", 120)
SUMMARY_SAMPLE_BYTES = _env_int("SESSIONBOARD_SUMMARY_SAMPLE_BYTES", 64 * 1024)
INJECTED_SKILL_MESSAGE_WINDOW = 20

# Stats reconciliation
MERGE_STALENESS_SECONDS = _env_int("SESSIONBOARD_MERGE_STALENESS_SECONDS", 60)
DETAIL_BATCH_SIZE = max(1, _env_int("SESSIONBOARD_DETAIL_BATCH_SIZE", 10))

# Observability
OTEL_ENABLED = _env_bool("SESSIONBOARD_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("SESSIONBOARD_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("SESSIONBOARD_OTEL_SERVICE_NAME", "sessionboard-backend")
PROM_PORT = _env_int("SESSIONBOARD_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("SESSIONBOARD_HOST", "0.0.0.0")
PORT = _env_int("SESSIONBOARD_PORT", 8000)

# CORS
FRONTEND_ORIGIN = os.getenv("SESSIONBOARD_FRONTEND_ORIGIN", "http://localhost:3000")
