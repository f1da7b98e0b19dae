"""
Per-pass metrics for sync runs.

Each pass owns a SyncMetrics collector; its snapshot goes into the pass
report. Weather fetches run on worker threads, so updates take a lock.
"""

import time
from collections import Counter
from threading import Lock
from typing import Any

GAMES_PROCESSED = "games_processed"
GAMES_SKIPPED = "games_skipped"
GAMES_FAILED = "games_failed"
PROVIDER_FAILURES = "provider_failures"
QUOTES_OBSERVED = "quotes_observed"
LINES_LOCKED = "lines_locked"
LINES_BACKFILLED = "lines_backfilled"
CACHE_HITS = "cache_hits"
CACHE_MISSES = "cache_misses"
PREDICTIONS_GENERATED = "predictions_generated"
DOCUMENTS_WRITTEN = "documents_written"


class SyncMetrics:
    """Named counters plus timing samples for one pass."""

    def __init__(self):
        self._lock = Lock()
        self._counts: Counter[str] = Counter()
        self._samples: dict[str, list[float]] = {}

    def inc(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self._samples.setdefault(name, []).append(value)

    def timer(self, name: str) -> "Timer":
        return Timer(self, name)

    def snapshot(self) -> dict[str, Any]:
        """Counters as ints; timings as count/total/max in seconds."""
        with self._lock:
            counters = dict(self._counts)
            timings = {
                name: {"count": len(values), "total": round(sum(values), 4), "max": round(max(values), 4)}
                for name, values in self._samples.items()
            }
        return {"counters": counters, "timings": timings}


class Timer:
    """``with metrics.timer("x") as t:``; ``t.elapsed`` is set on exit."""

    def __init__(self, metrics: SyncMetrics, name: str):
        self.metrics = metrics
        self.name = name
        self.elapsed = 0.0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed = time.perf_counter() - self._started
        self.metrics.observe(self.name, self.elapsed)
