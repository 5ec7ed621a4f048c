import time

from usage_tracker.cache import AggregationCache
from usage_tracker.models import EntityCounters, IncrementDelta
from usage_tracker.scheduler import FlushScheduler
from usage_tracker.store import StatsStore


class FlakyStore(StatsStore):
    """Fails the first ``failures`` saves, then behaves."""

    def __init__(self, data_dir, failures=1):
        super().__init__(data_dir)
        self.failures = failures
        self.saves = 0

    def save(self, key, data):
        self.saves += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("read-only file system")
        return super().save(key, data)


def _make(tmp_path, store=None, interval=3600):
    store = store or StatsStore(tmp_path)
    cache = AggregationCache(store)
    return cache, FlushScheduler(cache, store, interval_seconds=interval)


def test_flush_with_nothing_dirty_is_noop(tmp_path):
    _, scheduler = _make(tmp_path)
    result = scheduler.flush()
    assert result.noop
    assert list(tmp_path.iterdir()) == []


def test_forced_flush_of_empty_cache_creates_no_files(tmp_path):
    cache, scheduler = _make(tmp_path / "data")
    cache.get_or_load("2024-05-10")  # a read of a day with no data
    result = scheduler.flush(force=True)
    assert result.noop
    assert not (tmp_path / "data").exists()


def test_forced_flush_leaves_read_only_days_untouched(tmp_path):
    original = '{"a": {"totalTimeMs": 1, "note": "keep"}, "legacy": 7}'
    path = tmp_path / "2024-05-01.json"
    path.write_text(original, encoding="utf-8")
    cache, scheduler = _make(tmp_path)
    cache.snapshot("2024-05-01")

    result = scheduler.flush(force=True)
    assert result.noop
    assert path.read_text(encoding="utf-8") == original


def test_flush_writes_every_dirty_day(tmp_path):
    cache, scheduler = _make(tmp_path)
    cache.apply_increment("2024-05-09", "late", IncrementDelta(time_ms=10))
    cache.apply_increment("2024-05-10", "early", IncrementDelta(time_ms=20))

    result = scheduler.flush()
    assert result.written == ["2024-05-09", "2024-05-10"]
    assert result.failed == []
    assert StatsStore(tmp_path).load("2024-05-09") == {"late": EntityCounters(total_time_ms=10)}
    assert StatsStore(tmp_path).load("2024-05-10") == {"early": EntityCounters(total_time_ms=20)}
    assert cache.dirty_days() == []
    assert scheduler.last_flush is result


def test_failed_save_stays_dirty_and_retries(tmp_path):
    store = FlakyStore(tmp_path, failures=1)
    cache, scheduler = _make(tmp_path, store=store)
    cache.apply_increment("2024-05-10", "c", IncrementDelta(ai_messages=1))

    first = scheduler.flush()
    assert first.failed == ["2024-05-10"]
    assert cache.dirty_days() == ["2024-05-10"]
    assert not (tmp_path / "2024-05-10.json").exists()

    second = scheduler.flush()
    assert second.written == ["2024-05-10"]
    assert cache.dirty_days() == []
    assert StatsStore(tmp_path).load("2024-05-10")["c"].ai_msg_count == 1


def test_increment_after_flush_is_written_next_time(tmp_path):
    cache, scheduler = _make(tmp_path)
    cache.apply_increment("2024-05-10", "c", IncrementDelta(user_messages=1))
    scheduler.flush()
    cache.apply_increment("2024-05-10", "c", IncrementDelta(user_messages=1))
    scheduler.flush()
    assert StatsStore(tmp_path).load("2024-05-10")["c"].user_msg_count == 2


def test_periodic_tick_persists(tmp_path):
    cache, scheduler = _make(tmp_path, interval=0.05)
    scheduler.start()
    try:
        assert scheduler.running
        cache.apply_increment("2024-05-10", "c", IncrementDelta(time_ms=5))
        deadline = time.time() + 5
        while not (tmp_path / "2024-05-10.json").exists() and time.time() < deadline:
            time.sleep(0.02)
        assert (tmp_path / "2024-05-10.json").exists()
    finally:
        scheduler.stop()
    assert not scheduler.running


def test_stop_does_one_forced_flush(tmp_path):
    store = FlakyStore(tmp_path, failures=0)
    cache, scheduler = _make(tmp_path, store=store)
    scheduler.start()
    cache.apply_increment("2024-05-10", "c", IncrementDelta(time_ms=5))

    result = scheduler.stop()
    assert result is not None and result.forced
    assert result.written == ["2024-05-10"]
    assert store.saves == 1

    # second stop is a no-op and start after stop does nothing
    assert scheduler.stop() is None
    scheduler.start()
    assert not scheduler.running
    assert store.saves == 1


def test_stop_without_start_still_flushes(tmp_path):
    cache, scheduler = _make(tmp_path)
    cache.apply_increment("2024-05-10", "c", IncrementDelta(time_ms=5))
    scheduler.stop()
    assert (tmp_path / "2024-05-10.json").exists()
