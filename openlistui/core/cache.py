"""In-memory TTL cache for GitHub responses.

Shared by the release resolver and the artifact fetcher to stay under the
anonymous API rate limit. Nothing is persisted: a new process starts with
an empty cache. Stale entries are skipped on lookup and overwritten on the
next store, there is no background sweep.
"""

import logging
import re
import threading
import time
from typing import Callable
from urllib.parse import urlencode

from openlistui.core.models import CacheEntry

logger = logging.getLogger(__name__)

# 12 hours
DEFAULT_TTL = 12 * 60 * 60


def fingerprint(url: str, params: dict | None = None) -> str:
    """Cache key for a request: URL plus sorted query parameters."""
    if params:
        url = f"{url}?{urlencode(sorted(params.items()))}"
    return re.sub(r'[^0-9A-Za-z]', '_', url)


class ResponseCache:
    """Thread-safe TTL cache with an injectable clock."""

    def __init__(self, ttl: float = DEFAULT_TTL,
                 clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _is_valid(self, entry: CacheEntry, now: float) -> bool:
        return (now - entry.stored_at) < self.ttl

    def get(self, key: str):
        """Return the cached payload for ``key``, or None if missing/stale."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_valid(entry, self._clock()):
                return None
        logger.debug("Cache hit: %s", key)
        return entry.payload

    def set(self, key: str, payload) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key, payload, self._clock())
        logger.debug("Cache set: %s", key)

    def put_entry(self, key: str, payload, stored_at: float) -> None:
        """Store with an explicit timestamp (used to seed from elsewhere)."""
        with self._lock:
            self._entries[key] = CacheEntry(key, payload, stored_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        now = self._clock()
        with self._lock:
            total = len(self._entries)
            valid = sum(1 for e in self._entries.values() if self._is_valid(e, now))
        return {
            'total': total,
            'valid': valid,
            'expired': total - valid,
            'ttl_seconds': self.ttl,
        }

    def details(self) -> dict[str, dict]:
        """Per-key age and expiry, for the cache status page."""
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        out = {}
        for entry in entries:
            age = now - entry.stored_at
            out[entry.key] = {
                'age_seconds': int(age),
                'is_valid': self._is_valid(entry, now),
                'expires_in': int(self.ttl - age),
            }
        return out
