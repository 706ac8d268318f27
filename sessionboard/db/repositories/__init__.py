"""Repository package for database access."""

from .disk_cache import SqliteDiskCache

__all__ = [
    "SqliteDiskCache",
]
