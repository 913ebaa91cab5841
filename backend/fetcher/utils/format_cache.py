"""
Short-lived cache of resolved media URLs.

Maps a content id to the last direct URL that produced audio, so repeat
requests can skip format resolution. Entries expire after a fixed TTL and are
dropped on the first failed use. The store is bounded; the least recently
used entry is evicted when it is full.
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from cachetools import TTLCache

from .models import CachedFormat


class FormatCache:
    """Thread-safe TTL + LRU map of content id -> CachedFormat."""

    def __init__(
        self,
        ttl_seconds: float = 6 * 60 * 60,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._entries: TTLCache[str, CachedFormat] = TTLCache(
            maxsize=max(1, int(max_entries)), ttl=float(ttl_seconds), timer=clock
        )
        # TTLCache is not thread-safe on its own
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._entries.ttl

    @property
    def max_entries(self) -> int:
        return int(self._entries.maxsize)

    def get(self, content_id: str) -> Optional[CachedFormat]:
        """Return the unexpired entry for ``content_id`` or None."""
        with self._lock:
            self._entries.expire()
            return self._entries.get(content_id)

    def put(self, content_id: str, url: str, mime_type: str) -> CachedFormat:
        """Store (or replace) the direct URL for ``content_id``."""
        now = self._clock()
        entry = CachedFormat(
            content_id=content_id,
            direct_url=url,
            mime_type=mime_type,
            obtained_at=now,
            expires_at=now + self._entries.ttl,
        )
        with self._lock:
            self._entries[content_id] = entry
        return entry

    def evict(self, content_id: str) -> bool:
        with self._lock:
            return self._entries.pop(content_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)

    def __contains__(self, content_id: object) -> bool:
        return isinstance(content_id, str) and self.get(content_id) is not None
