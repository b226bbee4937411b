"""
web2rep/cache.py

Cache & Rate-Limit Layer.

Wraps "fetch AggregateResult for identity key K" with:
- a TTL cache keyed by K (5 minutes by default)
- a single process-wide minimum interval between upstream calls
  (2 seconds by default)

Order of checks on fetch():
    1. Fresh cache hit      -> cached value; no upstream call, rate limiter untouched
    2. Upstream call within min_interval of the previous one
                            -> RateLimitedNoop; no upstream call, cache untouched
    3. Otherwise            -> call upstream, cache the value on success

A throttled fetch is not an error. It returns a RateLimitedNoop, which is
falsy, so callers that only test for data still see "nothing new".

Create one AchievementCache per process and pass it by reference. State is
guarded by a lock that is never held across an await.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Union

from .config import CACHE_TTL_SECONDS, RATE_LIMIT_INTERVAL_SECONDS
from .models import AggregateResult, CacheEntry

logger = logging.getLogger("web2rep.cache")


@dataclass(frozen=True)
class RateLimitedNoop:
    """Signal that an upstream fetch was skipped by the rate limiter."""
    key: str
    retry_after: float

    def __bool__(self) -> bool:
        return False


FetchOutcome = Union[AggregateResult, RateLimitedNoop]


class AchievementCache:
    """
    TTL cache plus global upstream throttle for aggregate results.

    Usage:
        cache = AchievementCache()
        result = await cache.fetch("github-octocat", fetch_fn)
        if isinstance(result, RateLimitedNoop):
            ...  # throttled, try again after result.retry_after seconds
    """

    def __init__(
        self,
        ttl: float = CACHE_TTL_SECONDS,
        min_interval: float = RATE_LIMIT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            ttl: Seconds a cached aggregate stays valid
            min_interval: Minimum seconds between upstream calls
            clock: Time source, injectable for tests
        """
        self.ttl = ttl
        self.min_interval = min_interval
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._last_call: Optional[float] = None
        self._lock = threading.Lock()

        # Stats
        self._hits = 0
        self._misses = 0
        self._throttled = 0
        self._errors = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @property
    def last_call(self) -> Optional[float]:
        """Time of the last upstream call, or None."""
        return self._last_call

    def get(self, key: str) -> Optional[AggregateResult]:
        """Return a fresh cached value without touching the rate limiter."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_fresh(self._clock()):
                return entry.value
            # Expired: evict on read
            del self._entries[key]
            return None

    async def fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[AggregateResult]],
    ) -> FetchOutcome:
        """
        Return the aggregate for key, from cache or upstream.

        Args:
            key: Caller-supplied identity key (e.g. "github-octocat")
            fetcher: Async callable performing the upstream fetch

        Returns:
            AggregateResult, or RateLimitedNoop if the call was throttled

        Raises:
            Whatever the fetcher raises; the cache is not populated
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(now):
                self._hits += 1
                logger.debug(f"Cache hit for {key}")
                return entry.value

            if self._last_call is not None:
                elapsed = now - self._last_call
                if elapsed <= self.min_interval:
                    self._throttled += 1
                    logger.info(f"Rate limiting: skipping upstream call for {key}, {elapsed:.2f}s since last call")
                    return RateLimitedNoop(key=key, retry_after=self.min_interval - elapsed)

            self._last_call = now
            self._misses += 1

        logger.debug(f"Cache miss for {key}, fetching upstream")
        try:
            value = await fetcher()
        except Exception as e:
            with self._lock:
                self._errors += 1
            logger.warning(f"Upstream fetch failed for {key}: {e}")
            raise

        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=now + self.ttl,
            )
        logger.debug(f"Cached {key} until {now + self.ttl:.0f}")
        return value

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns True if it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop all entries. The rate limiter keeps its last-call time."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "throttled": self._throttled,
                "errors": self._errors,
            }
