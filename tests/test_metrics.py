"""
Tests for the per-pass metrics collector.
"""

from concurrent.futures import ThreadPoolExecutor

from rating_sync.metrics import CACHE_HITS, LINES_LOCKED, SyncMetrics


class TestSyncMetrics:

    def test_unknown_counter_is_zero(self):
        assert SyncMetrics().get(LINES_LOCKED) == 0

    def test_concurrent_increments(self):
        metrics = SyncMetrics()
        with ThreadPoolExecutor(max_workers=4) as pool:
            for _ in range(200):
                pool.submit(metrics.inc, CACHE_HITS)
        assert metrics.get(CACHE_HITS) == 200, f"Expected 200 hits, got {metrics.get(CACHE_HITS)}"

    def test_timer_records_sample(self):
        metrics = SyncMetrics()
        with metrics.timer("pass_duration_s") as timer:
            pass
        snapshot = metrics.snapshot()
        assert timer.elapsed >= 0.0
        assert snapshot["timings"]["pass_duration_s"]["count"] == 1
        assert snapshot["counters"] == {}
