# usage_tracker/scheduler.py
# Periodic persistence of dirty days, plus the one forced flush at shutdown.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from usage_tracker.cache import AggregationCache
from usage_tracker.metrics import USAGE_DAY_WRITES_TOTAL, USAGE_FLUSHES_TOTAL
from usage_tracker.store import StatsStore

log = logging.getLogger("usage_tracker.scheduler")


@dataclass
class FlushResult:
    forced: bool = False
    written: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    at: str | None = None

    @property
    def noop(self) -> bool:
        return not self.written and not self.failed


class FlushScheduler:
    """
    Owns the repeating flush task.

    ``start()`` spawns a daemon thread that calls ``flush()`` every
    ``interval_seconds``; the stop event doubles as the cancellation handle.
    ``stop()`` cancels it, waits for an in-flight tick, then runs exactly one
    forced flush. Forced or not, only dirty days are written; a day that
    was only read is left alone on disk. Flushes are serialized so an older snapshot can never be
    written over a newer one.
    """

    def __init__(self, cache: AggregationCache, store: StatsStore, interval_seconds: float = 60.0):
        self.cache = cache
        self.store = store
        self.interval = interval_seconds
        self._flush_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._stopped = False
        self.last_flush = FlushResult()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._state_lock:
            if self._thread is not None or self._stopped:
                return
            self._thread = threading.Thread(
                target=self._run, name="usage-flush", daemon=True
            )
            self._thread.start()
        log.info("flush_scheduler_started interval_s=%.1f", self.interval)

    def stop(self) -> FlushResult | None:
        """Cancel the periodic task and do the final forced flush. Idempotent."""
        with self._state_lock:
            if self._stopped:
                return None
            self._stopped = True
            thread = self._thread
        self._stop_event.set()
        if thread is not None:
            thread.join()
        log.info("flush_scheduler_stopped")
        result = self.flush(force=True)
        log.info(
            "final_flush_complete written=%d failed=%d", len(result.written), len(result.failed)
        )
        return result

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.flush()
            except Exception:
                # keep ticking; the days stay dirty for the next run
                log.exception("flush_tick_error")

    def flush(self, force: bool = False) -> FlushResult:
        with self._flush_lock:
            result = FlushResult(forced=force)
            pending = self.cache.take_dirty()
            if not pending:
                return result

            for key, data in pending.items():
                try:
                    self.store.save(key, data)
                except OSError as e:
                    self.cache.mark_dirty(key)
                    result.failed.append(key)
                    USAGE_DAY_WRITES_TOTAL.labels(result="error").inc()
                    log.error('flush_write_error day="%s" err="%s"', key, e)
                else:
                    result.written.append(key)
                    USAGE_DAY_WRITES_TOTAL.labels(result="ok").inc()

            result.at = datetime.now(UTC).isoformat()
            USAGE_FLUSHES_TOTAL.labels(forced=str(force).lower()).inc()
            log.info(
                "flush forced=%s written=%d failed=%d",
                force,
                len(result.written),
                len(result.failed),
            )
            self.last_flush = result
            return result
