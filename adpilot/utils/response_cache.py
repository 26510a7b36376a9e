"""In-memory TTL cache used as the first tier in front of database caches.

Usage:
    from adpilot.utils.response_cache import response_cache

    key = f"kwm:{keyword}:{locale}:{device}"
    hit = response_cache.get(key)
    if hit is None:
        hit = load_from_db_or_api(keyword)
        response_cache.set(key, hit, ttl=3600)
"""
import threading
import time
from typing import Any


class ResponseCache:
    """Thread-safe dict with per-key expiry and a bounded size."""

    def __init__(self, max_entries: int = 2000):
        self._store: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._max_entries = max_entries

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if time.time() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        with self._lock:
            if len(self._store) >= self._max_entries:
                self._evict_locked()
            self._store[key] = (time.time() + ttl, value)

    def _evict_locked(self) -> None:
        now = time.time()
        for k in [k for k, (exp, _) in self._store.items() if now > exp]:
            del self._store[k]
        if len(self._store) >= self._max_entries:
            soonest = min(self._store, key=lambda k: self._store[k][0])
            del self._store[soonest]

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def invalidate(self, prefix: str) -> int:
        """Remove all keys starting with prefix. Returns count removed."""
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for k in keys:
                del self._store[k]
            return len(keys)


response_cache = ResponseCache()
