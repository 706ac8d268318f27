"""Process-local caches keyed by file modification time or by age.

Entries are replaced whole on every write; readers never observe a
partially updated entry.
"""
from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


class MtimeCache(Generic[V]):
    """key -> (mtime, value); a lookup hits only when the mtime is unchanged."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable, mtime: float) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None or entry[0] != mtime:
            return None
        return entry[1]

    def put(self, key: Hashable, mtime: float, value: V) -> None:
        self._entries[key] = (mtime, value)

    def __len__(self) -> int:
        return len(self._entries)


class TimedCache(Generic[V]):
    """key -> (stored_at, value); a lookup hits while the entry is younger than ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return value

    def put(self, key: Hashable, value: V) -> None:
        self._entries[key] = (self._clock(), value)
