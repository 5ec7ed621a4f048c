# usage_tracker/cache.py
from __future__ import annotations

import threading

from usage_tracker.models import DayBucket, EntityCounters, IncrementDelta
from usage_tracker.store import StatsStore


class AggregationCache:
    """
    In-memory day key -> DayBucket map with a per-day dirty set.

    Authoritative for every day it holds: a day is read from disk at most once
    per process, after which all reads and writes are memory-only. Entries are
    never evicted.

    One lock guards everything, including the first-load disk read, so two
    concurrent first accesses to a day cannot both load it and two concurrent
    increments cannot lose an update.
    """

    def __init__(self, store: StatsStore):
        self._store = store
        self._lock = threading.Lock()
        self._days: dict[str, DayBucket] = {}
        self._dirty: set[str] = set()

    def _get_or_load_locked(self, key: str) -> DayBucket:
        bucket = self._days.get(key)
        if bucket is None:
            bucket = self._store.load(key)
            self._days[key] = bucket
        return bucket

    def get_or_load(self, key: str) -> DayBucket:
        with self._lock:
            return self._get_or_load_locked(key)

    def apply_increment(self, key: str, entity_id: str, delta: IncrementDelta) -> None:
        with self._lock:
            bucket = self._get_or_load_locked(key)
            counters = bucket.get(entity_id)
            if counters is None:
                counters = bucket[entity_id] = EntityCounters()
            counters.add(delta)
            self._dirty.add(key)

    def snapshot(self, key: str) -> dict[str, dict[str, int]]:
        """Point-in-time copy of one day in wire form (loads it if needed)."""
        with self._lock:
            bucket = self._get_or_load_locked(key)
            return {entity_id: c.to_dict() for entity_id, c in bucket.items()}

    def take_dirty(self) -> dict[str, dict[str, int]]:
        """
        Copy out every dirty day and clear its dirty marker.

        Clean days are never returned, so a day that was only read is never
        rewritten. Callers must hand failed days back through ``mark_dirty``.
        """
        with self._lock:
            out = {}
            for key in sorted(self._dirty):
                bucket = self._days.get(key, {})
                out[key] = {entity_id: c.to_dict() for entity_id, c in bucket.items()}
            self._dirty.clear()
            return out

    def mark_dirty(self, key: str) -> None:
        with self._lock:
            if key in self._days:
                self._dirty.add(key)

    def has_dirty(self) -> bool:
        with self._lock:
            return bool(self._dirty)

    def dirty_days(self) -> list[str]:
        with self._lock:
            return sorted(self._dirty)

    def cached_days(self) -> list[str]:
        with self._lock:
            return sorted(self._days)
