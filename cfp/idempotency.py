"""
In-process idempotency store: LRU eviction plus a per-entry TTL.

Duplicate triggers of the same operation for the same business by the same
caller inside the TTL get the cached result instead of a second run.
"""

import time
import hashlib
import threading
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def generate_idempotency_key(operation: str, business_id: int, caller: Any = "system") -> str:
    """sha256 over operation, business id and caller."""
    raw = f"{operation}:{business_id}:{caller}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class IdempotencyStore:
    """Thread-safe LRU + TTL map of key -> completed result."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def cleanup_expired(self) -> int:
        """Drop expired entries; return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (ts, _) in self._entries.items() if now - ts > self.ttl_seconds]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
