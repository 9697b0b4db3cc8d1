"""
Bounded TTL set for inbound event de-duplication.

Chat platforms deliver webhooks at least once, so adapters remember the event
ids they have already accepted. Entries expire after `ttl_seconds` and the
oldest entries are evicted once `max_size` is reached.
"""

import threading
import time
from collections import OrderedDict


class DedupCache:
    """Thread-safe, size- and time-bounded set of seen event ids."""

    def __init__(self, ttl_seconds: float = 3600, max_size: int = 10_000, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, key: str) -> bool:
        """Record a key. Returns False if it was already seen and still live."""
        now = self._clock()
        with self._lock:
            self._expire(now)
            if key in self._seen:
                return False
            self._seen[key] = now + self.ttl_seconds
            while len(self._seen) > self.max_size:
                self._seen.popitem(last=False)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            self._expire(self._clock())
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            self._expire(self._clock())
            return len(self._seen)

    def _expire(self, now: float):
        # Insertion order equals expiry order since the TTL is fixed
        while self._seen:
            key, expires_at = next(iter(self._seen.items()))
            if expires_at > now:
                break
            del self._seen[key]
