"""Keyed token bucket storage.

The store owns the key -> bucket map. Lookup-or-insert is serialized by a
store lock that is only held for the map operation; consumption is
serialized per bucket, so different keys never contend on bucket state.
"""

import threading
import time
from typing import Callable, Dict, Iterator, Optional

from bankbot.app.core.logging import get_logger
from bankbot.app.middleware.rate_limit.models import RatePolicy, TokenBucket

logger = get_logger(__name__)


class BucketStore:
    """In-memory bucket map with idle eviction and a size bound.

    Memory bounds:
    - ``evict_idle`` drops buckets that have not been touched for a TTL
    - inserting past ``max_entries`` evicts the least recently refilled 20%
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        """Initialize the store.

        Args:
            clock: Monotonic time source in seconds
            max_entries: Maximum number of buckets kept before eviction
        """
        self.clock = clock
        self._max_entries = max_entries
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, key: str) -> bool:
        return key in self._buckets

    def keys(self) -> Iterator[str]:
        return iter(list(self._buckets))

    def peek(self, key: str) -> Optional[TokenBucket]:
        """Get the bucket for a key without creating it."""
        return self._buckets.get(key)

    def get_or_create(self, key: str, policy: RatePolicy) -> TokenBucket:
        """Get the canonical bucket for a key, creating it full if absent."""
        bucket = self._buckets.get(key)
        if bucket is not None:
            return bucket

        with self._lock:
            # Another thread may have inserted while we waited
            bucket = self._buckets.get(key)
            if bucket is None:
                if len(self._buckets) >= self._max_entries:
                    self._evict_oldest()
                bucket = TokenBucket(
                    capacity=float(policy.capacity),
                    refill_rate=policy.refill_rate,
                    tokens=float(policy.capacity),
                    last_refill=self.clock(),
                )
                self._buckets[key] = bucket
            return bucket

    def _evict_oldest(self) -> None:
        """Remove the least recently refilled 20% of buckets. Caller holds the lock."""
        remove_count = max(1, int(self._max_entries * 0.2))
        oldest = sorted(self._buckets.items(), key=lambda item: item[1].last_refill)
        for key, _ in oldest[:remove_count]:
            del self._buckets[key]
        logger.info(f"Bucket store full, evicted {remove_count} buckets")

    def evict_idle(self, max_idle_seconds: float) -> int:
        """Remove buckets idle longer than ``max_idle_seconds``.

        A bucket idle that long has refilled to capacity, so dropping it
        does not change any future decision.

        Returns:
            Number of buckets removed
        """
        now = self.clock()
        with self._lock:
            expired = [
                key for key, bucket in self._buckets.items()
                if now - bucket.last_refill > max_idle_seconds
            ]
            for key in expired:
                del self._buckets[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} idle rate limit buckets")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
