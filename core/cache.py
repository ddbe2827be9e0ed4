"""
TTL Cache with Stale Fallback

Read-through cache for data that is expensive to produce (AI summaries, the
plan of the day) or that the UI wants to show while offline.

Rules:
1. get() returns data only while the entry is fresh (now - stored_at < ttl_ms)
2. get_stale() ignores freshness and tags the result with is_stale
3. Expired entries are never evicted proactively; they stay until removed
   by key or by prefix
4. Store failures are logged and treated as a miss - the cache is an
   optimization, never a source of truth
"""

import json
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional

from config import Config
from core.kv_store import KeyValueStore
from logger import get_logger

logger = get_logger(__name__)


def now_ms() -> float:
    """Wall clock in milliseconds"""
    return time.time() * 1000


# Every key written by this client starts with this prefix
CACHE_PREFIX = "rainy_day_cache_"


class CacheKeys:
    """Cache keys for the different data kinds"""
    PLAN = CACHE_PREFIX + "plan"
    NOTIFICATIONS = CACHE_PREFIX + "notifications"
    NOTIFICATION_COUNT = CACHE_PREFIX + "notification_count"
    EMAILS = CACHE_PREFIX + "emails"
    EVENTS = CACHE_PREFIX + "events"
    TASKS = CACHE_PREFIX + "tasks"
    SYNC_STATUS = CACHE_PREFIX + "sync_status"
    SUMMARY_PREFIX = CACHE_PREFIX + "email_summary_"

    @classmethod
    def summary(cls, email_id: str) -> str:
        return f"{cls.SUMMARY_PREFIX}{email_id}"


class CacheTTL:
    """Time-to-live per data kind, in milliseconds (overridable through Config)"""
    PLAN = Config.PLAN_CACHE_TTL_MS                   # 1 hour
    SUMMARY = Config.SUMMARY_CACHE_TTL_MS             # 1 hour
    NOTIFICATIONS = Config.NOTIFICATIONS_CACHE_TTL_MS  # 5 minutes
    NOTIFICATION_COUNT = Config.NOTIFICATIONS_CACHE_TTL_MS
    EMAILS = Config.DATA_CACHE_TTL_MS                 # 15 minutes
    EVENTS = Config.DATA_CACHE_TTL_MS
    TASKS = Config.DATA_CACHE_TTL_MS
    SYNC_STATUS = 5 * 60 * 1000


@dataclass
class CacheEntry:
    """One cached value with its freshness window"""
    key: str
    data: Any
    stored_at: float
    ttl_ms: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_ms

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> 'CacheEntry':
        data = json.loads(raw)
        return cls(
            key=data['key'],
            data=data['data'],
            stored_at=float(data['stored_at']),
            ttl_ms=float(data['ttl_ms']),
        )


@dataclass(frozen=True)
class StaleRead:
    """Result of a freshness-ignoring read"""
    data: Any
    is_stale: bool
    stored_at: float


class Cache:
    """
    TTL cache over a pluggable KeyValueStore.

    All access to the store goes through here so TTL and stale semantics are
    enforced in one place.
    """

    def __init__(self, store: KeyValueStore, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            store: Backing store shared process-wide
            clock: Returns the current time in milliseconds (defaults to wall clock)
        """
        self.store = store
        self.clock = clock or now_ms

    def set(self, key: str, data: Any, ttl_ms: float):
        """Store data under key, replacing any previous entry"""
        entry = CacheEntry(key=key, data=data, stored_at=self.clock(), ttl_ms=ttl_ms)
        try:
            self.store.set_item(key, entry.to_json())
        except Exception as e:
            logger.warning(f"Failed to cache {key}: {e}")

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.store.get_item(key)
            if raw is None:
                return None
            return CacheEntry.from_json(raw)
        except Exception as e:
            logger.warning(f"Failed to read cache {key}: {e}")
            return None

    def get(self, key: str) -> Optional[Any]:
        """Data for key if present and fresh, else None. Never deletes."""
        entry = self._read(key)
        if entry is None or not entry.is_fresh(self.clock()):
            return None
        return entry.data

    def get_stale(self, key: str) -> Optional[StaleRead]:
        """
        Data for key regardless of freshness.

        Only meant as a fallback after a live fetch failed because the
        backend could not be reached.
        """
        entry = self._read(key)
        if entry is None:
            return None
        return StaleRead(
            data=entry.data,
            is_stale=not entry.is_fresh(self.clock()),
            stored_at=entry.stored_at,
        )

    def remove(self, key: str):
        try:
            self.store.remove_item(key)
        except Exception as e:
            logger.warning(f"Failed to remove cache {key}: {e}")

    def clear_by_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix"""
        try:
            keys = self.store.list_keys(prefix)
        except Exception as e:
            logger.warning(f"Failed to list cache keys for '{prefix}': {e}")
            return 0

        removed = 0
        for key in keys:
            try:
                self.store.remove_item(key)
                removed += 1
            except Exception as e:
                logger.warning(f"Failed to remove cache {key}: {e}")

        if removed:
            logger.debug(f"Cleared {removed} cache entries with prefix '{prefix}'")
        return removed

    def stats(self, prefix: str = CACHE_PREFIX) -> Dict[str, int]:
        """Count fresh and stale entries under prefix"""
        try:
            keys = self.store.list_keys(prefix)
        except Exception as e:
            logger.warning(f"Failed to list cache keys for '{prefix}': {e}")
            return {'entries': 0, 'fresh': 0, 'stale': 0}

        now = self.clock()
        fresh = stale = 0
        for key in keys:
            entry = self._read(key)
            if entry is None:
                continue
            if entry.is_fresh(now):
                fresh += 1
            else:
                stale += 1

        return {'entries': fresh + stale, 'fresh': fresh, 'stale': stale}
