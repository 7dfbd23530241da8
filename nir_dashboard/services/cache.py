"""In-memory cache with per-entry TTL.

Used to keep the latest dashboard bundle per spreadsheet for a short time
so repeated page loads do not hit the Sheets API. Expiry is lazy: an
expired entry is dropped when it is read.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class MemoryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            now = self._clock()
            valid = sum(1 for expires_at, _ in self._entries.values() if now < expires_at)
            return {"total_entries": len(self._entries), "valid_entries": valid}
