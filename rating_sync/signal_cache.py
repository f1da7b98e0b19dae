"""
Signal Cache - weather and injury signals between passes.

Policies:
1. Rolling TTL: an entry is valid for N hours (default 6) from fetched_at.
   A stale read refetches; if the refetch fails the stale value is served.
2. Permanent: an entry explicitly marked permanent (weather once the game is
   final) or whose period is closed (strictly before the current period) is
   never refetched, however old it is.

Entries are plain JSON payloads so they round-trip through the document store.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Iterable, Optional

import structlog

from .metrics import CACHE_HITS, CACHE_MISSES, PROVIDER_FAILURES, SyncMetrics
from .models import CachedSignal
from .providers.base import ProviderError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheRead:
    value: Any
    from_cache: bool


class CacheManager:
    """
    TTL cache for one signal collection (e.g. weather, injuries).

    Thread-safe: weather for independent games is fetched on a worker pool.
    """

    def __init__(
        self,
        name: str,
        ttl_hours: float,
        clock: Callable[[], datetime],
        current_period: Optional[str] = None,
        entries: Iterable[CachedSignal] = (),
        metrics: Optional[SyncMetrics] = None,
    ):
        self.name = name
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock
        self.current_period = current_period
        self.metrics = metrics or SyncMetrics()
        self._entries: dict[str, CachedSignal] = {e.key: e for e in entries}
        self._dirty: set[str] = set()
        self._lock = Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # POLICY
    # ─────────────────────────────────────────────────────────────────────────

    def is_permanent(self, entry: CachedSignal) -> bool:
        if entry.permanent:
            return True
        return (
            entry.period is not None
            and self.current_period is not None
            and entry.period < self.current_period
        )

    def _is_stale(self, entry: Optional[CachedSignal]) -> bool:
        if entry is None:
            return True
        if self.is_permanent(entry):
            return False
        return self.clock() - entry.fetched_at > self.ttl

    def is_stale(self, key: str) -> bool:
        """True when a read of `key` would refetch (missing keys are stale)."""
        with self._lock:
            return self._is_stale(self._entries.get(key))

    # ─────────────────────────────────────────────────────────────────────────
    # READ / WRITE
    # ─────────────────────────────────────────────────────────────────────────

    def peek(self, key: str) -> Optional[CachedSignal]:
        with self._lock:
            return self._entries.get(key)

    def get(
        self,
        key: str,
        fetch: Optional[Callable[[], Any]] = None,
        period: Optional[str] = None,
        force: bool = False,
    ) -> CacheRead:
        """
        Read a signal, refetching when stale.

        Args:
            key: Cache key, e.g. "weather:401547352"
            fetch: Zero-arg callable returning a JSON payload (None = no refetch)
            period: Period the signal belongs to
            force: Bypass the rolling TTL (never a permanent entry)

        Returns:
            CacheRead(value, from_cache). A failed refetch serves the stale
            value with from_cache=True, or (None, False) when nothing is cached.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and (self.is_permanent(entry) or (not force and not self._is_stale(entry))):
                self.metrics.inc(CACHE_HITS)
                return CacheRead(entry.payload, True)

        self.metrics.inc(CACHE_MISSES)
        if fetch is None:
            if entry is not None:
                return CacheRead(entry.payload, True)
            return CacheRead(None, False)

        try:
            value = fetch()
        except ProviderError as e:
            self.metrics.inc(PROVIDER_FAILURES)
            if entry is not None:
                logger.warning("signal_fetch_failed_serving_stale", cache=self.name, key=key, error=str(e))
                return CacheRead(entry.payload, True)
            logger.warning("signal_fetch_failed", cache=self.name, key=key, error=str(e))
            return CacheRead(None, False)

        if value is None:
            return CacheRead(None, False)

        self.put(key, value, period=period if period is not None else (entry.period if entry else None))
        return CacheRead(value, False)

    def put(self, key: str, value: Any, period: Optional[str] = None, permanent: bool = False) -> CachedSignal:
        entry = CachedSignal(
            key=key,
            payload=value,
            fetched_at=self.clock(),
            period=period,
            permanent=permanent,
        )
        with self._lock:
            self._entries[key] = entry
            self._dirty.add(key)
        return entry

    def mark_permanent(self, key: str) -> bool:
        """Pin an existing entry so it is never refetched."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.permanent:
                return False
            self._entries[key] = replace(entry, permanent=True)
            self._dirty.add(key)
            return True

    def entries(self) -> list[CachedSignal]:
        with self._lock:
            return list(self._entries.values())

    def changed(self) -> list[CachedSignal]:
        """Entries written since construction, for persisting."""
        with self._lock:
            return [self._entries[k] for k in sorted(self._dirty)]
