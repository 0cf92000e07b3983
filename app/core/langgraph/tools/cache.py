"""In-memory TTL cache for tool payloads.

One instance is shared by every advisor run in the process. Entries are
keyed by ``(tool_name, normalized_symbol[, qualifier])`` and each carries
its own time-to-live, so quote tools (minutes) and static listing tools
(a day) can live in the same map.
"""

import time
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Optional,
)

from app.core.config import settings


@dataclass
class CacheEntry:
    """A cached payload and the clock reading after which it is stale."""

    value: Any
    expires_at: float


class ToolCache:
    """Process-wide keyed map with per-entry expiry.

    Reads and writes touch a single key and an overwrite simply replaces the
    entry, so concurrent runs share it without locking. Writes also sweep out
    expired entries, at most once per ``purge_interval``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, purge_interval: Optional[float] = None):
        """Initialize an empty cache.

        Args:
            clock: Monotonic clock in seconds; injectable for tests.
            purge_interval: Minimum seconds between sweeps; defaults to settings.
        """
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._clock = clock
        self._purge_interval = (
            purge_interval if purge_interval is not None else settings.TOOL_CACHE_PURGE_INTERVAL_SECONDS
        )
        self._next_purge_at: Optional[float] = None

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the live payload for ``key``, evicting it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: Hashable, value: Any, ttl_seconds: float) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        if ttl_seconds <= 0:
            return
        now = self._clock()
        if self._next_purge_at is None:
            self._next_purge_at = now + self._purge_interval
        elif now >= self._next_purge_at:
            self.purge_expired()
        self._entries[key] = CacheEntry(value=value, expires_at=now + ttl_seconds)

    def purge_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            int: Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        self._next_purge_at = now + self._purge_interval
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        """Return the number of stored entries, expired ones included."""
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        """Return True if ``key`` holds a live entry."""
        return self.get(key) is not None
