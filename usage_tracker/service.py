# usage_tracker/service.py
"""
UsageService: the one object that owns the cache, the store and the flush
scheduler, plus the two caller-facing operations.

- track(...)  : validate an increment and add it to today's bucket
- query(day)  : return one day's entity -> counters mapping

Lifecycle is driven by the host: start() prepares the data directory and
begins periodic flushing; stop() halts it and does the single forced flush.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from usage_tracker.cache import AggregationCache
from usage_tracker.config import Settings
from usage_tracker.daykey import current_day_key, is_future_day, parse_day_key
from usage_tracker.errors import UsageValidationError, ValidationReason
from usage_tracker.metrics import USAGE_CACHED_DAYS, USAGE_INCREMENTS_TOTAL, USAGE_REJECTED_TOTAL
from usage_tracker.models import IncrementDelta, LastFlush, ServiceStatus
from usage_tracker.scheduler import FlushScheduler
from usage_tracker.store import StatsStore

log = logging.getLogger("usage_tracker.service")


def _is_number(value: Any) -> bool:
    # bool is an int subclass; true/false are not counts. NaN and Infinity are not numbers here.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _positive_ms(value: Any) -> int:
    if not _is_number(value) or value <= 0:
        return 0
    return int(value)


def _count(value: Any, allow_zero: bool = False) -> int | None:
    """Integral count, or None when the value should be dropped."""
    if not _is_number(value):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    if value < 0 or (value == 0 and not allow_zero):
        return None
    return int(value)


def build_delta(
    time_increment_ms: Any = None,
    message_increment: Any = None,
    word_increment: Any = None,
    is_user: bool | None = None,
) -> IncrementDelta:
    """
    Turn raw tracking input into a delta. Unusable values become zeros.

    Words are credited only together with a message increment, to the same
    side (user or ai) as the messages.
    """
    messages = _count(message_increment)
    words = _count(word_increment, allow_zero=True) if messages else None
    if messages and is_user:
        return IncrementDelta(
            time_ms=_positive_ms(time_increment_ms),
            user_messages=messages,
            user_words=words or 0,
        )
    if messages:
        return IncrementDelta(
            time_ms=_positive_ms(time_increment_ms),
            ai_messages=messages,
            ai_words=words or 0,
        )
    return IncrementDelta(time_ms=_positive_ms(time_increment_ms))


class UsageService:
    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        store: StatsStore | None = None,
    ):
        self.settings = settings
        self.clock = clock or (lambda: datetime.now(UTC))
        self.store = store or StatsStore(settings.DATA_DIR)
        self.cache = AggregationCache(self.store)
        self.scheduler = FlushScheduler(
            self.cache, self.store, interval_seconds=settings.FLUSH_INTERVAL_SECONDS
        )
        self._started_at = time.time()

    # -------------------------
    # Lifecycle
    # -------------------------
    def start(self) -> None:
        # An unusable data directory is fatal at startup (OSError propagates).
        path = self.store.ensure_dir()
        log.info('usage_service_start data_dir="%s"', path)
        self.scheduler.start()

    def stop(self) -> None:
        log.info("usage_service_stop")
        self.scheduler.stop()

    def today(self) -> str:
        return current_day_key(self.clock())

    # -------------------------
    # Tracking
    # -------------------------
    def track(
        self,
        entity_id: str | None,
        time_increment_ms: Any = None,
        message_increment: Any = None,
        word_increment: Any = None,
        is_user: Any = None,
    ) -> None:
        try:
            if not entity_id:
                raise UsageValidationError(
                    reason=ValidationReason.MISSING_FIELD,
                    message="Missing entityId",
                    details={"field": "entityId"},
                )
            if time_increment_ms is None and message_increment is None:
                raise UsageValidationError(
                    reason=ValidationReason.NO_TRACKING_DATA,
                    message="At least timeIncrementMs or messageIncrement must be provided",
                )
            if message_increment is not None and not isinstance(is_user, bool):
                raise UsageValidationError(
                    reason=ValidationReason.MISSING_FIELD,
                    message="isUser (boolean) is required when messageIncrement is provided",
                    details={"field": "isUser"},
                )
        except UsageValidationError as e:
            USAGE_REJECTED_TOTAL.labels(operation="track", reason=e.reason.value).inc()
            raise

        delta = build_delta(time_increment_ms, message_increment, word_increment, is_user)
        key = self.today()
        self.cache.apply_increment(key, entity_id, delta)
        USAGE_INCREMENTS_TOTAL.inc()
        USAGE_CACHED_DAYS.set(len(self.cache.cached_days()))
        log.debug('tracked entity="%s" day="%s" delta=%s', entity_id, key, delta)

    # -------------------------
    # Query
    # -------------------------
    def query(self, day: str | None = None) -> dict[str, dict[str, int]]:
        if not day:
            key = self.today()
        else:
            try:
                key = parse_day_key(day)
                if is_future_day(key, self.clock()):
                    raise UsageValidationError(
                        reason=ValidationReason.FUTURE_DATE,
                        message="Cannot request stats for a future date.",
                        details={"date": key, "today": self.today()},
                    )
            except UsageValidationError as e:
                USAGE_REJECTED_TOTAL.labels(operation="query", reason=e.reason.value).inc()
                raise

        stats = self.cache.snapshot(key)
        USAGE_CACHED_DAYS.set(len(self.cache.cached_days()))
        return stats

    # -------------------------
    # Introspection
    # -------------------------
    def status(self) -> ServiceStatus:
        last = self.scheduler.last_flush
        return ServiceStatus(
            running=self.scheduler.running,
            data_dir=str(self.store.data_dir),
            flush_interval_seconds=self.scheduler.interval,
            today=self.today(),
            cached_days=self.cache.cached_days(),
            dirty_days=self.cache.dirty_days(),
            last_flush=LastFlush(
                at=last.at,
                forced=last.forced,
                written=list(last.written),
                failed=list(last.failed),
            ),
            uptime_seconds=int(time.time() - self._started_at),
        )
